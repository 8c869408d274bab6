"""
Cookie de sessão assinado.

Formato: ``base64url(JSON) + '.' + base64url(HMAC-SHA256(JSON))``, sem
padding. O payload carrega ``id``, ``nome``, ``email``, ``tipo_usuario`` e
``iat`` (epoch em segundos).
"""

import base64
import hashlib
import hmac
import json
import logging
import time

from flask import current_app

from salao.config import em_producao

logger = logging.getLogger(__name__)

COOKIE_NAME = 'session'
CAMPOS_SESSAO = ('id', 'nome', 'email', 'tipo_usuario')


class SessaoInvalida(Exception):
    pass


def _b64encode(dados):
    return base64.urlsafe_b64encode(dados).rstrip(b'=').decode('ascii')


def _b64decode(texto):
    padding = '=' * (-len(texto) % 4)
    return base64.urlsafe_b64decode(texto + padding)


def _assinar(segredo, corpo):
    return hmac.new(segredo.encode('utf-8'), corpo, hashlib.sha256).digest()


def encode_session(usuario, segredo, agora=None):
    payload = {campo: usuario[campo] for campo in CAMPOS_SESSAO}
    payload['iat'] = int(agora if agora is not None else time.time())
    corpo = json.dumps(payload, separators=(',', ':'), ensure_ascii=False).encode('utf-8')
    return f'{_b64encode(corpo)}.{_b64encode(_assinar(segredo, corpo))}'


def decode_session(valor, segredo, max_age, agora=None):
    if not valor or valor.count('.') != 1:
        raise SessaoInvalida('formato')

    corpo_b64, assinatura_b64 = valor.split('.')
    try:
        corpo = _b64decode(corpo_b64)
        assinatura = _b64decode(assinatura_b64)
    except (ValueError, TypeError):
        raise SessaoInvalida('base64')

    if not hmac.compare_digest(assinatura, _assinar(segredo, corpo)):
        raise SessaoInvalida('assinatura')

    try:
        payload = json.loads(corpo)
    except ValueError:
        raise SessaoInvalida('json')

    if not isinstance(payload, dict) or any(not payload.get(c) for c in CAMPOS_SESSAO):
        raise SessaoInvalida('payload')

    iat = payload.get('iat')
    if not isinstance(iat, int):
        raise SessaoInvalida('iat')

    agora = int(agora if agora is not None else time.time())
    if iat > agora + 60 or agora - iat > max_age:
        raise SessaoInvalida('expirada')

    return payload


def set_session_cookie(response, usuario):
    config = current_app.config
    valor = encode_session(usuario, config['SESSION_SECRET'])
    response.set_cookie(
        COOKIE_NAME,
        valor,
        max_age=config['SESSION_MAX_AGE'],
        httponly=True,
        secure=em_producao(config),
        samesite='Lax',
        path='/',
    )
    return response


def clear_session_cookie(response):
    response.delete_cookie(COOKIE_NAME, path='/', httponly=True, samesite='Lax')
    return response


def load_session(request):
    valor = request.cookies.get(COOKIE_NAME)
    if not valor:
        return None

    config = current_app.config
    try:
        return decode_session(valor, config['SESSION_SECRET'], config['SESSION_MAX_AGE'])
    except SessaoInvalida as erro:
        logger.warning('sessao.invalida', extra={'motivo': str(erro)})
        return None
