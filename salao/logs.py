import logging

SENSITIVE_KEYS = {
    'senha',
    'password',
    'token',
    'secret',
    'authorization',
    'session',
    'cookie',
    'email',
    'telefone',
    'cliente_telefone',
    'phone',
    'x-api-key',
}

REDACTED = '[REDACTED]'
MAX_DEPTH = 4

# Atributos padrão de um LogRecord; o resto veio de extra=...
_RECORD_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}


def redact(value, depth=0):
    """Copia ``value`` mascarando chaves sensíveis em dicts aninhados."""
    if depth > MAX_DEPTH:
        return '[Truncated]'

    if isinstance(value, dict):
        limpo = {}
        for chave, valor in value.items():
            if str(chave).lower() in SENSITIVE_KEYS:
                limpo[chave] = REDACTED
            else:
                limpo[chave] = redact(valor, depth + 1)
        return limpo

    if isinstance(value, (list, tuple)):
        return [redact(item, depth + 1) for item in value]

    return value


class RedactingFilter(logging.Filter):
    """Mascara dados sensíveis passados em ``extra`` antes da formatação."""

    def filter(self, record):
        for chave in list(vars(record)):
            if chave in _RECORD_ATTRS:
                continue
            if chave.lower() in SENSITIVE_KEYS:
                setattr(record, chave, REDACTED)
            else:
                setattr(record, chave, redact(getattr(record, chave)))

        if isinstance(record.args, dict):
            record.args = redact(record.args)
        return True


class ContextFormatter(logging.Formatter):
    """Acrescenta o contexto de ``extra`` ao fim da linha."""

    def format(self, record):
        linha = super().format(record)
        contexto = {
            chave: valor
            for chave, valor in vars(record).items()
            if chave not in _RECORD_ATTRS
        }
        if contexto:
            linha = f'{linha} {contexto}'
        return linha


def configurar_logs(app):
    handler = logging.StreamHandler()
    handler.addFilter(RedactingFilter())
    handler.setFormatter(
        ContextFormatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    logger = logging.getLogger('salao')
    logger.handlers = [handler]
    logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))
    logger.propagate = False

    logging.getLogger('werkzeug').setLevel(logging.WARNING)
    return logger
