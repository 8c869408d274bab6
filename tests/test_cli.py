from salao.models import Usuario


def test_migrar_senhas(app, dados):
    legado = dados.usuario('Ana', 'ana@salao.com.br', 'legado123', com_hash=False)
    com_hash = dados.usuario('Bia', 'bia@salao.com.br', 'senha123')
    hash_anterior = dados.buscar(Usuario, com_hash).senha

    resultado = app.test_cli_runner().invoke(args=['migrar-senhas'])

    assert '1 senha(s) migrada(s).' in resultado.output
    assert dados.buscar(Usuario, legado).senha.startswith('$2')
    assert dados.buscar(Usuario, com_hash).senha == hash_anterior


def test_criar_admin(app, dados, login):
    resultado = app.test_cli_runner().invoke(args=[
        'criar-admin', '--email', 'dona@salao.com.br', '--senha', 'forte123',
    ])

    assert resultado.exit_code == 0
    client = app.test_client()
    resposta = login(client, 'dona@salao.com.br', 'forte123')
    assert resposta.get_json()['user']['tipo_usuario'] == 'admin'


def test_criar_admin_duplicado(app, dados):
    dados.admin(email='dona@salao.com.br')

    resultado = app.test_cli_runner().invoke(args=[
        'criar-admin', '--email', 'dona@salao.com.br', '--senha', 'forte123',
    ])

    assert resultado.exit_code != 0
