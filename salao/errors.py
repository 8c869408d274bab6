import logging

from flask import jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)

MENSAGENS_HTTP = {
    400: 'Requisição inválida',
    401: 'Não autenticado',
    403: 'Sem permissão',
    404: 'Não encontrado',
    405: 'Método não permitido',
    409: 'Conflito',
    429: 'Muitas requisições. Tente novamente mais tarde.',
}

MENSAGEM_GENERICA = 'Erro ao processar solicitação'


class ApiError(Exception):
    status_code = 500
    mensagem_padrao = MENSAGEM_GENERICA

    def __init__(self, mensagem=None):
        self.mensagem = mensagem or self.mensagem_padrao
        super().__init__(self.mensagem)


class ErroValidacao(ApiError):
    status_code = 400
    mensagem_padrao = 'Dados inválidos'


class NaoAutenticado(ApiError):
    status_code = 401
    mensagem_padrao = 'Não autenticado'


class NaoEncontrado(ApiError):
    status_code = 404
    mensagem_padrao = 'Não encontrado'


class Conflito(ApiError):
    status_code = 409
    mensagem_padrao = 'Conflito'


class LimiteExcedido(ApiError):
    status_code = 429
    mensagem_padrao = MENSAGENS_HTTP[429]


def resposta_erro(mensagem, status):
    return jsonify({'error': mensagem}), status


def register_error_handlers(app):
    from salao import db

    @app.errorhandler(ApiError)
    def handle_api_error(erro):
        if erro.status_code >= 500:
            logger.error('api.erro_interno', extra={'path': request.path})
        return resposta_erro(erro.mensagem, erro.status_code)

    @app.errorhandler(HTTPException)
    def handle_http_exception(erro):
        status = erro.code or 500
        mensagem = MENSAGENS_HTTP.get(status, MENSAGEM_GENERICA)
        # abort(403, description='...') usa a descrição informada
        if erro.description and erro.description != type(erro).description:
            mensagem = erro.description
        return resposta_erro(mensagem, status)

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(erro):
        db.session.rollback()
        logger.error(
            'db.falha',
            extra={'path': request.path, 'erro': type(erro).__name__},
            exc_info=erro,
        )
        return resposta_erro(MENSAGEM_GENERICA, 500)

    @app.errorhandler(Exception)
    def handle_unexpected(erro):
        db.session.rollback()
        logger.exception('api.erro_inesperado', extra={'path': request.path})
        return resposta_erro(MENSAGEM_GENERICA, 500)
