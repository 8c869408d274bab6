"""Validações compartilhadas pelos formulários e pelo webhook."""

import re
import uuid
from datetime import time
from decimal import Decimal

from wtforms.validators import StopValidation, ValidationError

UUID_RE = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', re.IGNORECASE)
TELEFONE_RE = re.compile(r'^\(?\d{2}\)?\s?\d{4,5}-?\d{4}$')
HORA_RE = re.compile(r'^([01]?\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$')

# Marcas de template não expandido vindas da automação (n8n, Make, ...)
PLACEHOLDER_RE = re.compile(
    r'\{\{|\}\}|\$json|\$node|\[object Object\]|^\s*(undefined|null)\s*$',
    re.IGNORECASE,
)

HORA_ABERTURA = 8
HORA_FECHAMENTO = 20


def parse_uuid(valor):
    """UUID se ``valor`` tiver o formato canônico, senão None."""
    if isinstance(valor, uuid.UUID):
        return valor
    if not isinstance(valor, str) or not UUID_RE.match(valor.strip()):
        return None
    return uuid.UUID(valor.strip())


def normalizar_hora(valor):
    """
    Normaliza ``HH:MM``, ``H:MM``, ``HH:MM:SS`` e ``H:MM:SS`` para ``HH:MM``.

    Retorna None se o texto não estiver em nenhum desses formatos.
    """
    if not isinstance(valor, str):
        return None
    match = HORA_RE.match(valor.strip())
    if not match:
        return None
    return f'{int(match.group(1)):02d}:{match.group(2)}'


def hora_para_time(texto):
    horas, minutos = texto.split(':')
    return time(int(horas), int(minutos))


def dentro_do_expediente(hora):
    return HORA_ABERTURA <= hora.hour < HORA_FECHAMENTO


def somente_digitos(telefone):
    return re.sub(r'\D', '', telefone or '')


def contem_placeholder(valor):
    return isinstance(valor, str) and bool(PLACEHOLDER_RE.search(valor))


def texto(valor):
    """Filtro de campo: aceita números vindos do JSON e remove espaços."""
    if valor is None:
        return None
    return str(valor).strip()


class Obrigatorio:
    """Como InputRequired, mas aceita 0 e False vindos do JSON."""

    field_flags = {'required': True}

    def __init__(self, message=None):
        self.message = message

    def __call__(self, form, field):
        if field.raw_data and field.raw_data[0] not in (None, ''):
            return
        field.errors[:] = []
        raise StopValidation(self.message or f'{field.label.text} é obrigatório')


class UUIDValido:
    def __init__(self, message=None):
        self.message = message

    def __call__(self, form, field):
        if parse_uuid(field.data) is None:
            raise ValidationError(self.message or f'{field.label.text}: UUID inválido')


class HoraValida:
    """Valida e normaliza o campo para ``HH:MM``."""

    def __init__(self, message=None):
        self.message = message

    def __call__(self, form, field):
        normalizada = normalizar_hora(field.data)
        if normalizada is None:
            raise StopValidation(self.message or 'Horário inválido (use HH:MM)')
        field.data = normalizada


class Telefone:
    def __init__(self, message=None):
        self.message = message

    def __call__(self, form, field):
        if not TELEFONE_RE.match(field.data or ''):
            raise ValidationError(self.message or 'Telefone inválido')


class Booleano:
    """Exige true/false explícito quando o campo foi enviado."""

    def __call__(self, form, field):
        if not field.raw_data:
            return
        valor = field.raw_data[0]
        if not (isinstance(valor, bool) or valor in ('true', 'false')):
            raise ValidationError(f'{field.label.text} deve ser true ou false')


class ValorPositivo:
    def __init__(self, maximo=Decimal('1000000')):
        self.maximo = maximo

    def __call__(self, form, field):
        if field.data is None:
            raise StopValidation('Valor inválido')
        if field.data <= 0:
            raise ValidationError('Valor deve ser positivo')
        if field.data > self.maximo:
            raise ValidationError('Valor muito alto')
