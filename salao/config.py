import os
from pathlib import Path

from dotenv import load_dotenv

# .env na raiz do projeto
env_path = Path(__file__).resolve().parent.parent / '.env'
load_dotenv(dotenv_path=env_path)

SESSION_SECRET_MIN_LENGTH = 32


class ConfigError(RuntimeError):
    """Configuração obrigatória ausente ou inválida."""


def ler_env(nome, padrao=''):
    valor = os.environ.get(nome, padrao)
    if valor is None:
        return ''
    texto = str(valor).strip()
    if len(texto) >= 2 and texto[0] == texto[-1] and texto[0] in ('"', "'"):
        texto = texto[1:-1].strip()
    return texto


def ler_env_int(nome, padrao):
    texto = ler_env(nome)
    if not texto:
        return padrao
    try:
        return int(texto)
    except ValueError:
        raise ConfigError(f'{nome} deve ser um número inteiro')


class Config:
    APP_ENV = ler_env('APP_ENV', 'development').lower()

    SQLALCHEMY_DATABASE_URI = ler_env('DATABASE_URL', 'sqlite:///salao.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # O cookie 'session' é o da aplicação; o Flask usa outro nome.
    SESSION_SECRET = ler_env('SESSION_SECRET')
    SECRET_KEY = SESSION_SECRET
    SESSION_COOKIE_NAME = 'flask_sessao'
    SESSION_MAX_AGE = 60 * 60 * 24 * 7

    # API JSON: sem token CSRF nos formulários
    WTF_CSRF_ENABLED = False

    WEBHOOK_API_KEY = ler_env('WEBHOOK_API_KEY')

    LOGIN_RATE_LIMIT = ler_env_int('LOGIN_RATE_LIMIT', 5)
    LOGIN_RATE_WINDOW = ler_env_int('LOGIN_RATE_WINDOW', 60)
    WEBHOOK_RATE_LIMIT = ler_env_int('WEBHOOK_RATE_LIMIT', 30)
    WEBHOOK_RATE_WINDOW = ler_env_int('WEBHOOK_RATE_WINDOW', 60)

    LOG_LEVEL = ler_env('LOG_LEVEL', 'INFO').upper()

    BCRYPT_LOG_ROUNDS = 12


def validar_config(config):
    segredo = config.get('SESSION_SECRET') or ''
    if len(segredo) < SESSION_SECRET_MIN_LENGTH:
        raise ConfigError(
            f'SESSION_SECRET deve ter pelo menos {SESSION_SECRET_MIN_LENGTH} caracteres'
        )
    if not config.get('SECRET_KEY'):
        config['SECRET_KEY'] = segredo


def em_producao(config):
    return config.get('APP_ENV') == 'production'
