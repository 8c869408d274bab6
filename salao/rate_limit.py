"""
Rate limiting por chave (normalmente o IP do cliente).

A implementação em memória vale por processo e zera quando o processo
reinicia. Outra implementação de ``RateLimiter`` (ex.: Redis) pode ser
registrada em ``app.extensions['rate_limiters']`` sem mudar as rotas.
"""

import logging
import time
from abc import ABC, abstractmethod
from threading import Lock

from flask import current_app, request

from salao.errors import LimiteExcedido

logger = logging.getLogger(__name__)


class RateLimiter(ABC):
    @abstractmethod
    def hit(self, key):
        """Registra uma tentativa; retorna False se o limite estourou."""

    @abstractmethod
    def reset(self, key=None):
        """Zera uma chave, ou todas quando ``key`` é None."""


class InMemoryRateLimiter(RateLimiter):
    """Janela fixa: ``max_requests`` por ``window_seconds`` para cada chave."""

    def __init__(self, max_requests, window_seconds, clock=time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._registros = {}
        self._lock = Lock()
        self._ultima_limpeza = clock()

    def hit(self, key):
        agora = self.clock()
        with self._lock:
            self._limpar_expirados(agora)

            registro = self._registros.get(key)
            if registro is None or agora >= registro['reset_em']:
                self._registros[key] = {'count': 1, 'reset_em': agora + self.window_seconds}
                return True

            if registro['count'] >= self.max_requests:
                return False

            registro['count'] += 1
            return True

    def reset(self, key=None):
        with self._lock:
            if key is None:
                self._registros.clear()
            else:
                self._registros.pop(key, None)

    def _limpar_expirados(self, agora):
        if agora - self._ultima_limpeza < self.window_seconds:
            return
        expirados = [k for k, r in self._registros.items() if agora >= r['reset_em']]
        for chave in expirados:
            del self._registros[chave]
        self._ultima_limpeza = agora


def init_rate_limiters(app):
    limiters = app.extensions.setdefault('rate_limiters', {})
    limiters.setdefault(
        'login',
        InMemoryRateLimiter(app.config['LOGIN_RATE_LIMIT'], app.config['LOGIN_RATE_WINDOW']),
    )
    limiters.setdefault(
        'webhook',
        InMemoryRateLimiter(app.config['WEBHOOK_RATE_LIMIT'], app.config['WEBHOOK_RATE_WINDOW']),
    )


def get_client_ip():
    encaminhado = request.headers.get('X-Forwarded-For')
    if encaminhado:
        return encaminhado.split(',')[0].strip()

    ip_real = request.headers.get('X-Real-IP')
    if ip_real:
        return ip_real.strip()

    return request.remote_addr or 'unknown'


def check_rate_limit(nome):
    limiter = current_app.extensions['rate_limiters'][nome]
    ip = get_client_ip()
    if not limiter.hit(f'{nome}:{ip}'):
        logger.warning('rate_limit.excedido', extra={'limiter': nome, 'ip': ip})
        raise LimiteExcedido()
