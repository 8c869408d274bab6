from datetime import date, time, timedelta

import pytest

from salao.models import Agendamento
from salao.rate_limit import InMemoryRateLimiter

URL = '/api/webhook/whatsapp'
HEADERS = {'X-API-Key': 'chave-do-webhook'}


def proxima_terca():
    hoje = date.today()
    return hoje + timedelta(days=(1 - hoje.weekday()) % 7 or 7)


def amanha():
    return (date.today() + timedelta(days=1)).isoformat()


@pytest.fixture
def salao(dados):
    corte = dados.servico('Corte', '60.00')
    manicure = dados.servico('Manicure', '35.00')
    ana = dados.usuario('Ana', 'ana@salao.com.br')
    dados.habilitar(ana, corte)
    return {'corte': corte, 'manicure': manicure, 'ana': ana}


def payload(**extra):
    dados = {
        'cliente_nome': 'João Silva',
        'cliente_telefone': '(11) 99999-9999',
        'data_agendamento': amanha(),
        'hora_agendamento': '14:00',
        'servico_nome': 'Corte',
    }
    dados.update(extra)
    return dados


def test_cria_agendamento_pendente(client, dados, salao):
    resposta = client.post(URL, json=payload(), headers=HEADERS)

    assert resposta.status_code == 201
    corpo = resposta.get_json()
    assert corpo['success'] is True
    assert corpo['agendamento']['status'] == 'pendente'

    agendamento = dados.buscar(Agendamento, corpo['agendamento']['id'])
    assert agendamento.pago is False
    assert agendamento.cliente_telefone == '11999999999'
    assert str(agendamento.funcionario_id) == salao['ana']
    assert str(agendamento.servico_id) == salao['corte']


def test_aceita_aliases_na_query_string(client, salao):
    resposta = client.post(URL, headers=HEADERS, query_string={
        'nome do cliente': 'Maria Souza',
        'whatsapp': '11988887777',
        'data': amanha(),
        'horario': '9:30',
        'servico': 'corte',
        'profissional': 'ana',
    })

    assert resposta.status_code == 201


def test_corpo_json_prevalece_sobre_query(client, dados, salao):
    resposta = client.post(
        URL,
        headers=HEADERS,
        query_string={'hora_agendamento': '07:00'},
        json=payload(hora_agendamento='15:00'),
    )

    assert resposta.status_code == 201
    agendamento = dados.buscar(Agendamento, resposta.get_json()['agendamento']['id'])
    assert agendamento.hora_agendamento == time(15, 0)


def test_json_malformado(client, salao):
    resposta = client.post(URL, headers=HEADERS, data='{"cliente_nome": ', content_type='application/json')

    assert resposta.status_code == 400
    assert resposta.get_json() == {'error': 'JSON inválido'}


def test_campos_obrigatorios_ausentes(client, salao):
    resposta = client.post(URL, headers=HEADERS, json={'cliente_nome': 'João Silva'})

    assert resposta.status_code == 400
    assert 'cliente_telefone' in resposta.get_json()['error']


def test_placeholder_em_campo_obrigatorio(client, dados, salao):
    resposta = client.post(URL, headers=HEADERS, json=payload(cliente_nome='{{ $json.nome }}'))

    assert resposta.status_code == 400
    assert dados.contar(Agendamento) == 0


def test_placeholder_em_campo_opcional_e_ignorado(client, dados, salao):
    resposta = client.post(URL, headers=HEADERS, json=payload(funcionario_nome='{{profissional}}'))

    assert resposta.status_code == 201
    agendamento = dados.buscar(Agendamento, resposta.get_json()['agendamento']['id'])
    assert str(agendamento.funcionario_id) == salao['ana']


@pytest.mark.parametrize('entrada, esperado', [
    ('09:05', time(9, 5)),
    ('9:05', time(9, 5)),
    ('09:05:30', time(9, 5)),
    ('9:05:30', time(9, 5)),
])
def test_normaliza_horario(client, dados, salao, entrada, esperado):
    resposta = client.post(URL, headers=HEADERS, json=payload(hora_agendamento=entrada))

    assert resposta.status_code == 201
    agendamento = dados.buscar(Agendamento, resposta.get_json()['agendamento']['id'])
    assert agendamento.hora_agendamento == esperado


@pytest.mark.parametrize('hora', ['9:5', '25:00', 'meio-dia'])
def test_horario_invalido(client, salao, hora):
    resposta = client.post(URL, headers=HEADERS, json=payload(hora_agendamento=hora))

    assert resposta.status_code == 400


@pytest.mark.parametrize('hora', ['07:59', '20:00', '22:30'])
def test_fora_do_expediente_nao_grava(client, dados, salao, hora):
    resposta = client.post(URL, headers=HEADERS, json=payload(hora_agendamento=hora))

    assert resposta.status_code == 400
    assert 'horário de funcionamento' in resposta.get_json()['error']
    assert dados.contar(Agendamento) == 0


def test_data_invalida(client, salao):
    resposta = client.post(URL, headers=HEADERS, json=payload(data_agendamento='20/01/2025'))

    assert resposta.status_code == 400
    assert resposta.get_json()['error'] == 'Data inválida (use YYYY-MM-DD)'


def test_mesmo_payload_duas_vezes(client, dados, salao):
    primeira = client.post(URL, headers=HEADERS, json=payload())
    segunda = client.post(URL, headers=HEADERS, json=payload())

    assert primeira.status_code == 201
    assert segunda.status_code == 409
    assert segunda.get_json()['error'] == 'Horário já reservado'
    assert dados.contar(Agendamento) == 1


def test_cancelado_libera_horario(client, dados, salao):
    data = date.today() + timedelta(days=1)
    dados.agendamento(salao['ana'], salao['corte'], data, time(14, 0), status='cancelado')

    resposta = client.post(URL, headers=HEADERS, json=payload())

    assert resposta.status_code == 201


def test_id_explicito_nao_habilitado_e_rejeitado(client, dados, salao):
    resposta = client.post(URL, headers=HEADERS, json=payload(
        servico_id=salao['manicure'],
        funcionario_id=salao['ana'],
        servico_nome='Corte',
        funcionario_nome='Ana',
    ))

    assert resposta.status_code == 400
    assert resposta.get_json()['error'] == 'Funcionário não habilitado para este serviço'
    assert dados.contar(Agendamento) == 0


def test_nome_de_funcionario_nao_habilitado_cai_para_outro(client, dados, salao):
    bia = dados.usuario('Bia', 'bia@salao.com.br')
    dados.habilitar(bia, salao['manicure'])

    resposta = client.post(URL, headers=HEADERS, json=payload(servico_nome='Manicure', funcionario_nome='Ana'))

    assert resposta.status_code == 201
    agendamento = dados.buscar(Agendamento, resposta.get_json()['agendamento']['id'])
    assert str(agendamento.funcionario_id) == bia
    assert str(agendamento.servico_id) == salao['manicure']


def test_servico_sem_funcionario_habilitado(client, dados, salao):
    resposta = client.post(URL, headers=HEADERS, json=payload(servico_nome='Manicure', funcionario_nome='Ana'))

    assert resposta.status_code == 400
    assert resposta.get_json()['error'] == 'Nenhum funcionário habilitado para este serviço'
    assert dados.contar(Agendamento) == 0


def test_sem_servicos_cadastrados(client):
    resposta = client.post(URL, headers=HEADERS, json=payload())

    assert resposta.status_code == 400
    assert resposta.get_json()['error'] == 'Nenhum serviço cadastrado'


def test_bloqueio_semanal(client, dados, salao):
    # terça = 2 (domingo = 0)
    dados.bloqueio(salao['ana'], 2, time(9, 0), time(12, 0))
    terca = proxima_terca().isoformat()

    bloqueado = client.post(URL, headers=HEADERS, json=payload(data_agendamento=terca, hora_agendamento='10:00'))
    livre = client.post(URL, headers=HEADERS, json=payload(data_agendamento=terca, hora_agendamento='13:00'))

    assert bloqueado.status_code == 409
    assert bloqueado.get_json()['error'] == 'Funcionário indisponível neste horário'
    assert livre.status_code == 201


def test_fim_do_bloqueio_e_exclusivo(client, dados, salao):
    dados.bloqueio(salao['ana'], 2, time(9, 0), time(12, 0))

    resposta = client.post(
        URL, headers=HEADERS,
        json=payload(data_agendamento=proxima_terca().isoformat(), hora_agendamento='12:00'),
    )

    assert resposta.status_code == 201


def test_exige_chave(client, salao):
    sem_chave = client.post(URL, json=payload())
    chave_errada = client.post(URL, json=payload(), headers={'X-API-Key': 'outra'})

    assert sem_chave.status_code == 401
    assert chave_errada.status_code == 401


def test_aceita_bearer(client, salao):
    resposta = client.post(URL, json=payload(), headers={'Authorization': 'Bearer chave-do-webhook'})

    assert resposta.status_code == 201


def test_sem_chave_configurada_em_producao(app, client, salao):
    app.config['WEBHOOK_API_KEY'] = ''
    app.config['APP_ENV'] = 'production'

    resposta = client.post(URL, json=payload())

    assert resposta.status_code == 401


def test_limite_de_requisicoes(app, client, salao):
    app.extensions['rate_limiters']['webhook'] = InMemoryRateLimiter(2, 60)

    codigos = [
        client.post(URL, headers=HEADERS, json=payload(hora_agendamento=hora)).status_code
        for hora in ('10:00', '11:00', '12:00')
    ]

    assert codigos == [201, 201, 429]


def test_get_documenta_uso(client):
    resposta = client.get(URL)

    assert resposta.status_code == 200
    corpo = resposta.get_json()
    assert corpo['required_fields'] == [
        'cliente_nome', 'cliente_telefone', 'data_agendamento', 'hora_agendamento',
    ]


def test_data_numerica(client, dados, salao):
    resposta = client.post(URL, headers=HEADERS, json=payload(data_agendamento=20250120))

    assert resposta.status_code == 400
    assert resposta.get_json()['error'] == 'Data inválida (use YYYY-MM-DD)'
    assert dados.contar(Agendamento) == 0


def test_campo_com_objeto(client, salao):
    resposta = client.post(URL, headers=HEADERS, json=payload(cliente_nome={'primeiro': 'João'}))

    assert resposta.status_code == 400
    assert resposta.get_json()['error'] == 'Campo cliente_nome com tipo inválido'


def test_indice_barra_horario_ja_ocupado(client, dados, salao, monkeypatch):
    # sem a checagem prévia, como se duas requisições passassem por ela juntas
    monkeypatch.setattr('salao.agendamentos.verificar_conflitos', lambda *args: None)

    primeira = client.post(URL, headers=HEADERS, json=payload())
    segunda = client.post(URL, headers=HEADERS, json=payload(cliente_nome='Maria Souza'))

    assert primeira.status_code == 201
    assert segunda.status_code == 409
    assert segunda.get_json()['error'] == 'Horário já reservado'
    assert dados.contar(Agendamento) == 1

    outro_horario = client.post(URL, headers=HEADERS, json=payload(hora_agendamento='15:00'))
    assert outro_horario.status_code == 201
