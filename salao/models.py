import re
import uuid
from datetime import datetime
from enum import Enum

from salao import db, bcrypt

BCRYPT_HASH_RE = re.compile(r'^\$2[aby]\$')


class TipoUsuario(str, Enum):
    ADMIN = 'admin'
    FUNCIONARIO = 'funcionario'


class StatusAgendamento(str, Enum):
    PENDENTE = 'pendente'
    CONFIRMADO = 'confirmado'
    CONCLUIDO = 'concluido'
    CANCELADO = 'cancelado'


TRANSICOES_STATUS = {
    StatusAgendamento.PENDENTE: {StatusAgendamento.CONFIRMADO, StatusAgendamento.CANCELADO},
    StatusAgendamento.CONFIRMADO: {StatusAgendamento.CONCLUIDO, StatusAgendamento.CANCELADO},
    StatusAgendamento.CONCLUIDO: set(),
    StatusAgendamento.CANCELADO: set(),
}


def pode_transitar(atual, novo):
    atual = StatusAgendamento(atual)
    novo = StatusAgendamento(novo)
    return atual == novo or novo in TRANSICOES_STATUS[atual]


class Usuario(db.Model):
    __tablename__ = 'usuarios'

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    nome = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    senha = db.Column(db.String(256), nullable=False)
    tipo_usuario = db.Column(db.String(20), nullable=False, default=TipoUsuario.FUNCIONARIO.value)
    telefone = db.Column(db.String(20), nullable=True)
    criado_em = db.Column(db.DateTime, default=datetime.utcnow)

    servicos = db.relationship('FuncionarioServico', back_populates='funcionario', lazy=True,
                               cascade='all, delete-orphan')
    disponibilidades = db.relationship('Disponibilidade', back_populates='funcionario', lazy=True,
                                       cascade='all, delete-orphan')

    def set_password(self, senha):
        self.senha = bcrypt.generate_password_hash(senha).decode('utf-8')

    def senha_tem_hash(self):
        return bool(BCRYPT_HASH_RE.match(self.senha or ''))

    def to_dict(self):
        return {
            'id': str(self.id),
            'nome': self.nome,
            'email': self.email,
            'telefone': self.telefone,
            'tipo_usuario': self.tipo_usuario,
            'criado_em': self.criado_em.isoformat() if self.criado_em else None,
        }


class Servico(db.Model):
    __tablename__ = 'servicos'

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    nome_servico = db.Column(db.String(100), nullable=False)
    descricao = db.Column(db.Text, nullable=True)
    preco = db.Column(db.Numeric(10, 2), nullable=False)
    duracao_minutos = db.Column(db.Integer, nullable=False)

    funcionarios = db.relationship('FuncionarioServico', back_populates='servico', lazy=True,
                                   cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': str(self.id),
            'nome_servico': self.nome_servico,
            'descricao': self.descricao,
            'preco': float(self.preco),
            'duracao_minutos': self.duracao_minutos,
        }


class FuncionarioServico(db.Model):
    __tablename__ = 'funcionario_servicos'

    funcionario_id = db.Column(db.Uuid, db.ForeignKey('usuarios.id'), primary_key=True)
    servico_id = db.Column(db.Uuid, db.ForeignKey('servicos.id'), primary_key=True)
    criado_em = db.Column(db.DateTime, default=datetime.utcnow)

    funcionario = db.relationship('Usuario', back_populates='servicos')
    servico = db.relationship('Servico', back_populates='funcionarios')


class Disponibilidade(db.Model):
    """Janela semanal em que o funcionário NÃO atende (0 = domingo)."""

    __tablename__ = 'disponibilidades'

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    funcionario_id = db.Column(db.Uuid, db.ForeignKey('usuarios.id'), nullable=False)
    dia_semana = db.Column(db.Integer, nullable=False)
    hora_inicio = db.Column(db.Time, nullable=False)
    hora_fim = db.Column(db.Time, nullable=False)

    funcionario = db.relationship('Usuario', back_populates='disponibilidades')

    __table_args__ = (
        db.CheckConstraint('dia_semana BETWEEN 0 AND 6', name='ck_disponibilidade_dia_semana'),
    )

    def bloqueia(self, hora):
        return self.hora_inicio <= hora < self.hora_fim

    def to_dict(self):
        return {
            'id': str(self.id),
            'funcionario_id': str(self.funcionario_id),
            'dia_semana': self.dia_semana,
            'hora_inicio': self.hora_inicio.strftime('%H:%M'),
            'hora_fim': self.hora_fim.strftime('%H:%M'),
        }


class Agendamento(db.Model):
    __tablename__ = 'agendamentos'

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    cliente_nome = db.Column(db.String(100), nullable=False)
    cliente_telefone = db.Column(db.String(20), nullable=False)
    funcionario_id = db.Column(db.Uuid, db.ForeignKey('usuarios.id'), nullable=False)
    servico_id = db.Column(db.Uuid, db.ForeignKey('servicos.id'), nullable=False)
    data_agendamento = db.Column(db.Date, nullable=False)
    hora_agendamento = db.Column(db.Time, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=StatusAgendamento.PENDENTE.value)
    pago = db.Column(db.Boolean, nullable=False, default=False)
    criado_em = db.Column(db.DateTime, default=datetime.utcnow)

    funcionario = db.relationship('Usuario')
    servico = db.relationship('Servico')

    # Um horário ativo por funcionário; cancelados liberam o horário.
    __table_args__ = (
        db.Index(
            'uq_agendamento_horario_ativo',
            'funcionario_id', 'data_agendamento', 'hora_agendamento',
            unique=True,
            sqlite_where=db.text("status <> 'cancelado'"),
            postgresql_where=db.text("status <> 'cancelado'"),
        ),
    )

    def to_dict(self):
        dados = {
            'id': str(self.id),
            'cliente_nome': self.cliente_nome,
            'cliente_telefone': self.cliente_telefone,
            'funcionario_id': str(self.funcionario_id),
            'servico_id': str(self.servico_id),
            'data_agendamento': self.data_agendamento.isoformat(),
            'hora_agendamento': self.hora_agendamento.strftime('%H:%M'),
            'status': self.status,
            'pago': self.pago,
            'criado_em': self.criado_em.isoformat() if self.criado_em else None,
        }
        if self.funcionario is not None:
            dados['funcionario'] = {'nome': self.funcionario.nome}
        if self.servico is not None:
            dados['servico'] = {
                'nome_servico': self.servico.nome_servico,
                'preco': float(self.servico.preco),
            }
        return dados


class Despesa(db.Model):
    __tablename__ = 'despesas'

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    descricao = db.Column(db.String(255), nullable=False)
    valor = db.Column(db.Numeric(10, 2), nullable=False)
    categoria = db.Column(db.String(100), nullable=False)
    data = db.Column(db.Date, nullable=False)
    observacoes = db.Column(db.String(500), nullable=True)
    criado_em = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint('valor > 0', name='ck_despesa_valor_positivo'),
    )

    def to_dict(self):
        return {
            'id': str(self.id),
            'descricao': self.descricao,
            'valor': float(self.valor),
            'categoria': self.categoria,
            'data': self.data.isoformat(),
            'observacoes': self.observacoes,
        }
