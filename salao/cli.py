import click

from salao import db
from salao.models import TipoUsuario, Usuario
from salao.seguranca import migrar_senhas_legadas


def register_commands(app):

    @app.cli.command('init-db')
    def init_db():
        """Cria as tabelas que ainda não existem."""
        db.create_all()
        click.echo('Banco de dados inicializado.')

    @app.cli.command('criar-admin')
    @click.option('--nome', default='Administrador', show_default=True)
    @click.option('--email', prompt=True)
    @click.option('--senha', prompt=True, hide_input=True, confirmation_prompt=True)
    def criar_admin(nome, email, senha):
        """Cadastra um usuário administrador."""
        if Usuario.query.filter_by(email=email).first():
            raise click.ClickException(f'Já existe um usuário com o email {email}')

        admin = Usuario(nome=nome, email=email, tipo_usuario=TipoUsuario.ADMIN.value)
        admin.set_password(senha)
        db.session.add(admin)
        db.session.commit()
        click.echo(f'Administrador {email} criado.')

    @app.cli.command('migrar-senhas')
    def migrar_senhas():
        """Troca senhas legadas em texto puro por hash bcrypt."""
        total = migrar_senhas_legadas(Usuario.query.all())
        click.echo(f'{total} senha(s) migrada(s).')
