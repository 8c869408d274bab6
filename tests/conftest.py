import uuid
from datetime import date, time, timedelta
from decimal import Decimal

import pytest

from salao import create_app, db
from salao.models import (
    Agendamento, Despesa, Disponibilidade, FuncionarioServico, Servico, TipoUsuario, Usuario,
)

SEGREDO = 'segredo-de-teste-com-mais-de-32-caracteres'
CHAVE_WEBHOOK = 'chave-do-webhook'


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SESSION_SECRET': SEGREDO,
        'SECRET_KEY': SEGREDO,
        'WEBHOOK_API_KEY': CHAVE_WEBHOOK,
        'APP_ENV': 'development',
        'BCRYPT_LOG_ROUNDS': 4,
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def proximo_dia(dia_da_semana_python):
    """Próxima data (a partir de amanhã) com ``date.weekday() == dia_da_semana_python``."""
    hoje = date.today()
    dias = (dia_da_semana_python - hoje.weekday()) % 7 or 7
    return hoje + timedelta(days=dias)


class Dados:
    """Atalhos para popular o banco; cada método devolve o id como texto."""

    def __init__(self, app):
        self.app = app

    def _salvar(self, obj):
        with self.app.app_context():
            db.session.add(obj)
            db.session.commit()
            return str(obj.id)

    def usuario(self, nome, email, senha='senha123', tipo=TipoUsuario.FUNCIONARIO.value, com_hash=True):
        usuario = Usuario(nome=nome, email=email, tipo_usuario=tipo)
        if com_hash:
            with self.app.app_context():
                usuario.set_password(senha)
        else:
            usuario.senha = senha
        return self._salvar(usuario)

    def admin(self, email='admin@salao.com.br', senha='admin123'):
        return self.usuario('Administrador', email, senha, tipo=TipoUsuario.ADMIN.value)

    def servico(self, nome, preco='50.00', duracao=30):
        return self._salvar(Servico(nome_servico=nome, preco=Decimal(preco), duracao_minutos=duracao))

    def habilitar(self, funcionario_id, *servico_ids):
        with self.app.app_context():
            for servico_id in servico_ids:
                db.session.add(FuncionarioServico(
                    funcionario_id=_uuid(funcionario_id),
                    servico_id=_uuid(servico_id),
                ))
            db.session.commit()

    def bloqueio(self, funcionario_id, dia_semana, inicio, fim):
        return self._salvar(Disponibilidade(
            funcionario_id=_uuid(funcionario_id),
            dia_semana=dia_semana,
            hora_inicio=inicio,
            hora_fim=fim,
        ))

    def agendamento(self, funcionario_id, servico_id, data, hora=time(10, 0),
                    status='pendente', pago=False, cliente_telefone='11999999999'):
        return self._salvar(Agendamento(
            cliente_nome='Cliente Teste',
            cliente_telefone=cliente_telefone,
            funcionario_id=_uuid(funcionario_id),
            servico_id=_uuid(servico_id),
            data_agendamento=data,
            hora_agendamento=hora,
            status=status,
            pago=pago,
        ))

    def despesa(self, valor, data, categoria='produtos', descricao='Compra de produtos'):
        return self._salvar(Despesa(
            descricao=descricao, valor=Decimal(valor), categoria=categoria, data=data,
        ))

    def buscar(self, modelo, obj_id):
        with self.app.app_context():
            obj = db.session.get(modelo, _uuid(obj_id))
            if obj is not None:
                db.session.expunge(obj)
            return obj

    def contar(self, modelo):
        with self.app.app_context():
            return modelo.query.count()


def _uuid(valor):
    return valor if isinstance(valor, uuid.UUID) else uuid.UUID(valor)


@pytest.fixture
def dados(app):
    return Dados(app)


def entrar(client, email, senha):
    return client.post('/api/auth/login', json={'email': email, 'password': senha})


@pytest.fixture
def admin_client(app, dados):
    dados.admin()
    client = app.test_client()
    resposta = entrar(client, 'admin@salao.com.br', 'admin123')
    assert resposta.status_code == 200
    return client


@pytest.fixture
def login():
    return entrar
