import hmac
import logging

from flask import current_app, request

from salao import bcrypt, db
from salao.config import em_producao
from salao.errors import NaoAutenticado

logger = logging.getLogger(__name__)


def comparar_texto(a, b):
    """Comparação em tempo constante para senhas legadas em texto puro."""
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode('utf-8'), b.encode('utf-8'))


def verificar_senha(usuario, senha):
    """
    Confere ``senha`` com a credencial salva.

    Hash bcrypt é verificado só via bcrypt. Valor legado em texto puro é
    comparado em tempo constante e, se bater, trocado por um hash.
    """
    if usuario.senha_tem_hash():
        try:
            return bcrypt.check_password_hash(usuario.senha, senha)
        except ValueError:
            logger.warning('auth.hash_invalido', extra={'usuario_id': str(usuario.id)})
            return False

    if not comparar_texto(senha, usuario.senha or ''):
        return False

    usuario.set_password(senha)
    db.session.commit()
    logger.info('auth.senha_migrada', extra={'usuario_id': str(usuario.id)})
    return True


def migrar_senhas_legadas(usuarios):
    """Gera hash bcrypt para toda senha ainda em texto puro."""
    migrados = 0
    for usuario in usuarios:
        if usuario.senha and not usuario.senha_tem_hash():
            usuario.set_password(usuario.senha)
            migrados += 1
    db.session.commit()
    return migrados


def extrair_chave_webhook():
    chave = request.headers.get('X-API-Key')
    if chave:
        return chave.strip()

    autorizacao = request.headers.get('Authorization', '')
    if autorizacao.startswith('Bearer '):
        return autorizacao[len('Bearer '):].strip()
    return ''


def verificar_webhook_auth():
    esperado = current_app.config.get('WEBHOOK_API_KEY') or ''

    if not esperado:
        if em_producao(current_app.config):
            logger.error('webhook.sem_chave_configurada')
            raise NaoAutenticado('Não autorizado')
        logger.warning('webhook.sem_autenticacao_em_desenvolvimento')
        return

    if not comparar_texto(extrair_chave_webhook(), esperado):
        logger.warning('webhook.chave_invalida', extra={'path': request.path})
        raise NaoAutenticado('Não autorizado')
