import uuid

from flask_login import UserMixin

from salao.models import TipoUsuario


class UserProxy(UserMixin):
    """Usuário da requisição, montado a partir do cookie de sessão."""

    def __init__(self, user_id, nome, email, tipo_usuario):
        self.id = str(user_id)
        self.nome = nome
        self.email = email
        self.tipo_usuario = tipo_usuario

    @classmethod
    def from_session(cls, payload):
        if payload.get('tipo_usuario') not in (TipoUsuario.ADMIN.value, TipoUsuario.FUNCIONARIO.value):
            return None
        try:
            uuid.UUID(str(payload['id']))
        except ValueError:
            return None
        return cls(payload['id'], payload['nome'], payload['email'], payload['tipo_usuario'])

    @property
    def uuid(self):
        return uuid.UUID(self.id)

    @property
    def is_admin(self):
        return self.tipo_usuario == TipoUsuario.ADMIN.value

    @property
    def is_funcionario(self):
        return self.tipo_usuario == TipoUsuario.FUNCIONARIO.value

    def to_dict(self):
        return {
            'id': self.id,
            'nome': self.nome,
            'email': self.email,
            'tipo_usuario': self.tipo_usuario,
        }
