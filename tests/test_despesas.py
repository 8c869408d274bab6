from datetime import date, timedelta

import pytest

from salao.models import Despesa

URL = '/api/expenses'


def despesa(**extra):
    dados = {
        'descricao': 'Shampoo profissional',
        'valor': 50.00,
        'categoria': 'produtos',
        'data': (date.today() - timedelta(days=5)).isoformat(),
    }
    dados.update(extra)
    return dados


@pytest.mark.parametrize('valor', [-5, 0, '1000000.01'])
def test_valor_invalido(admin_client, dados, valor):
    resposta = admin_client.post(URL, json=despesa(valor=valor))

    assert resposta.status_code == 400
    assert dados.contar(Despesa) == 0


def test_valor_ausente(admin_client):
    corpo = despesa()
    del corpo['valor']

    resposta = admin_client.post(URL, json=corpo)

    assert resposta.status_code == 400
    assert resposta.get_json()['error'] == 'Valor é obrigatório'


def test_data_invalida(admin_client):
    resposta = admin_client.post(URL, json=despesa(data='ontem'))

    assert resposta.status_code == 400
    assert resposta.get_json()['error'] == 'Data inválida (use YYYY-MM-DD)'


def test_cria_e_lista_nos_ultimos_30_dias(admin_client):
    criada = admin_client.post(URL, json=despesa())

    assert criada.status_code == 201
    assert criada.get_json()['valor'] == 50.0

    lista = admin_client.get(URL, query_string={'period': '30'}).get_json()
    assert [d['id'] for d in lista] == [criada.get_json()['id']]
    assert lista[0]['categoria'] == 'produtos'


def test_filtro_de_periodo(admin_client, dados):
    hoje = date.today()
    recente = dados.despesa('20.00', hoje - timedelta(days=3))
    antiga = dados.despesa('80.00', hoje - timedelta(days=45))

    padrao = admin_client.get(URL).get_json()
    semana = admin_client.get(URL, query_string={'period': '7'}).get_json()
    todas = admin_client.get(URL, query_string={'period': 'all'}).get_json()

    assert [d['id'] for d in padrao] == [recente]
    assert [d['id'] for d in semana] == [recente]
    assert [d['id'] for d in todas] == [recente, antiga]


def test_periodo_desconhecido(admin_client):
    assert admin_client.get(URL, query_string={'period': '15'}).status_code == 400


def test_editar(admin_client, dados):
    despesa_id = dados.despesa('20.00', date.today())

    resposta = admin_client.put(URL, json=despesa(id=despesa_id, valor='35.90', categoria='aluguel'))

    assert resposta.status_code == 200
    atual = dados.buscar(Despesa, despesa_id)
    assert str(atual.valor) == '35.90'
    assert atual.categoria == 'aluguel'


def test_editar_inexistente(admin_client):
    resposta = admin_client.put(URL, json=despesa(id='00000000-0000-4000-8000-000000000000'))

    assert resposta.status_code == 404


def test_excluir(admin_client, dados):
    despesa_id = dados.despesa('20.00', date.today())

    assert admin_client.delete(URL, query_string={'id': despesa_id}).status_code == 200
    assert dados.contar(Despesa) == 0
    assert admin_client.delete(URL, query_string={'id': despesa_id}).status_code == 404


def test_excluir_sem_id(admin_client):
    resposta = admin_client.delete(URL)

    assert resposta.status_code == 400
    assert resposta.get_json()['error'] == 'ID é obrigatório'


def test_somente_admin(app, dados, login):
    dados.usuario('Ana', 'ana@salao.com.br', 'senha123')
    client = app.test_client()
    login(client, 'ana@salao.com.br', 'senha123')

    assert client.get(URL).status_code == 403
    assert client.post(URL, json=despesa()).status_code == 403


@pytest.mark.parametrize('valor', [{'x': 1}, [[10]]])
def test_valor_com_tipo_invalido(admin_client, dados, valor):
    resposta = admin_client.post(URL, json=despesa(valor=valor))

    assert resposta.status_code == 400
    assert dados.contar(Despesa) == 0


def test_valor_booleano(admin_client, dados):
    resposta = admin_client.post(URL, json=despesa(valor=True))

    assert resposta.status_code == 400
    assert dados.contar(Despesa) == 0
