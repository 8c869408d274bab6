import csv
import io
from collections import Counter, defaultdict
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.orm import joinedload

from salao.agendamentos import dia_semana
from salao.models import Agendamento, Despesa, Servico, StatusAgendamento, TipoUsuario, Usuario

CONCLUIDO = StatusAgendamento.CONCLUIDO.value
CONFIRMADO = StatusAgendamento.CONFIRMADO.value
CANCELADO = StatusAgendamento.CANCELADO.value
PENDENTE = StatusAgendamento.PENDENTE.value

NOMES_DIAS = ['Domingo', 'Segunda', 'Terça', 'Quarta', 'Quinta', 'Sexta', 'Sábado']

DIAS_POR_PERIODO = {'week': 7, 'month': 30, 'all': None}

CABECALHO_CSV = ['Data', 'Hora', 'Cliente', 'Telefone', 'Serviço', 'Funcionário', 'Valor', 'Status', 'Pago']


def inicio_periodo(period, hoje=None):
    """Data inicial do filtro; None para 'all'. Aceita '7', '30', ... ou week/month."""
    hoje = hoje or date.today()
    dias = DIAS_POR_PERIODO[period] if period in DIAS_POR_PERIODO else int(period)
    return hoje - timedelta(days=dias) if dias is not None else None


def _dinheiro(valor):
    return float(Decimal(valor).quantize(Decimal('0.01')))


def _preco(agendamento):
    return agendamento.servico.preco if agendamento.servico is not None else Decimal('0')


def _percentual(parte, total):
    return f'{(parte / total) * 100:.2f}' if total else '0.00'


def _agendamentos_desde(inicio):
    query = Agendamento.query.options(joinedload(Agendamento.servico))
    if inicio is not None:
        query = query.filter(Agendamento.data_agendamento >= inicio)
    return query


def metricas_negocio(hoje=None):
    inicio = inicio_periodo('month', hoje)
    agendamentos = _agendamentos_desde(inicio).all()

    concluidos = [a for a in agendamentos if a.status == CONCLUIDO]
    cancelados = [a for a in agendamentos if a.status == CANCELADO]

    precos = [_preco(a) for a in concluidos]
    ticket_medio = sum(precos, Decimal('0')) / len(precos) if precos else Decimal('0')

    por_hora = Counter(a.hora_agendamento.hour for a in concluidos)
    horarios_pico = sorted(
        ({'hora': hora, 'total': total} for hora, total in por_hora.items()),
        key=lambda item: (-item['total'], item['hora']),
    )[:5]

    por_dia = Counter(dia_semana(a.data_agendamento) for a in concluidos)
    dias_pico = [
        {'dia_semana': NOMES_DIAS[dia], 'total': total}
        for dia, total in sorted(por_dia.items(), key=lambda item: (-item[1], item[0]))
    ]

    return {
        'metrics': {
            'clientes_atendidos': len({a.cliente_telefone for a in concluidos}),
            'total_atendimentos': len(concluidos),
            'ticket_medio': _dinheiro(ticket_medio),
            'total_cancelamentos': len(cancelados),
            'taxa_cancelamento': _percentual(len(cancelados), len(agendamentos)),
        },
        'peakHours': horarios_pico,
        'peakDays': dias_pico,
    }


def faturamento_por_funcionario(period='month', hoje=None):
    inicio = inicio_periodo(period, hoje)
    funcionarios = (
        Usuario.query
        .filter_by(tipo_usuario=TipoUsuario.FUNCIONARIO.value)
        .order_by(Usuario.nome.asc())
        .all()
    )

    por_funcionario = defaultdict(list)
    for agendamento in _agendamentos_desde(inicio).all():
        por_funcionario[agendamento.funcionario_id].append(agendamento)

    resultado = []
    for funcionario in funcionarios:
        agendamentos = por_funcionario.get(funcionario.id, [])
        realizado = sum(
            (_preco(a) for a in agendamentos if a.status == CONCLUIDO and a.pago), Decimal('0')
        )
        pendente = sum(
            (_preco(a) for a in agendamentos
             if (a.status == CONCLUIDO and not a.pago) or a.status == CONFIRMADO),
            Decimal('0'),
        )
        resultado.append({
            'id': str(funcionario.id),
            'nome': funcionario.nome,
            'total_atendimentos': sum(1 for a in agendamentos if a.status == CONCLUIDO),
            'faturamento_realizado': _dinheiro(realizado),
            'faturamento_pendente': _dinheiro(pendente),
            'cancelamentos': sum(1 for a in agendamentos if a.status == CANCELADO),
        })

    return sorted(resultado, key=lambda item: item['faturamento_realizado'], reverse=True)


def desempenho_servicos(period='month', hoje=None):
    inicio = inicio_periodo(period, hoje)
    servicos = Servico.query.order_by(Servico.nome_servico.asc()).all()

    por_servico = defaultdict(list)
    for agendamento in _agendamentos_desde(inicio).all():
        por_servico[agendamento.servico_id].append(agendamento.status)

    resultado = []
    for servico in servicos:
        status = por_servico.get(servico.id, [])
        vendas = status.count(CONCLUIDO)
        resultado.append({
            'id': str(servico.id),
            'nome_servico': servico.nome_servico,
            'preco': _dinheiro(servico.preco),
            'total_vendas': vendas,
            'receita_total': _dinheiro(servico.preco * vendas),
            'cancelamentos': status.count(CANCELADO),
            'taxa_conversao': _percentual(vendas, len(status)),
        })

    return sorted(resultado, key=lambda item: item['receita_total'], reverse=True)


def analise_lucro(period='30', hoje=None):
    hoje = hoje or date.today()
    inicio = inicio_periodo(period, hoje)

    pagos = _agendamentos_desde(inicio).filter(Agendamento.pago.is_(True)).all()

    despesas_query = Despesa.query
    if inicio is not None:
        despesas_query = despesas_query.filter(Despesa.data >= inicio)
    despesas = despesas_query.all()

    receita = sum((_preco(a) for a in pagos), Decimal('0'))
    total_despesas = sum((d.valor for d in despesas), Decimal('0'))
    lucro = receita - total_despesas

    por_categoria = defaultdict(Decimal)
    for despesa in despesas:
        por_categoria[despesa.categoria] += despesa.valor

    receita_por_dia = defaultdict(Decimal)
    for agendamento in pagos:
        receita_por_dia[agendamento.data_agendamento] += _preco(agendamento)

    despesa_por_dia = defaultdict(Decimal)
    for despesa in despesas:
        despesa_por_dia[despesa.data] += despesa.valor

    serie = []
    for offset in range(29, -1, -1):
        dia = hoje - timedelta(days=offset)
        serie.append({
            'date': dia.isoformat(),
            'revenue': _dinheiro(receita_por_dia[dia]),
            'expenses': _dinheiro(despesa_por_dia[dia]),
            'profit': _dinheiro(receita_por_dia[dia] - despesa_por_dia[dia]),
        })

    return {
        'totalRevenue': _dinheiro(receita),
        'totalExpenses': _dinheiro(total_despesas),
        'netProfit': _dinheiro(lucro),
        'profitMargin': round(float(lucro / receita * 100), 2) if receita else 0,
        'expensesByCategory': {categoria: _dinheiro(valor) for categoria, valor in por_categoria.items()},
        'dailyData': serie,
    }


def relatorio_financeiro_csv(data_inicio=None, data_fim=None):
    query = (
        Agendamento.query
        .options(joinedload(Agendamento.servico), joinedload(Agendamento.funcionario))
        .filter(Agendamento.status == CONCLUIDO)
        .order_by(Agendamento.data_agendamento.desc(), Agendamento.hora_agendamento.desc())
    )
    if data_inicio:
        query = query.filter(Agendamento.data_agendamento >= data_inicio)
    if data_fim:
        query = query.filter(Agendamento.data_agendamento <= data_fim)

    saida = io.StringIO()
    csv.writer(saida, lineterminator='\n').writerow(CABECALHO_CSV)

    linhas = csv.writer(saida, quoting=csv.QUOTE_NONNUMERIC, lineterminator='\n')
    for agendamento in query.all():
        linhas.writerow([
            agendamento.data_agendamento.isoformat(),
            agendamento.hora_agendamento.strftime('%H:%M'),
            agendamento.cliente_nome,
            agendamento.cliente_telefone,
            agendamento.servico.nome_servico if agendamento.servico else '',
            agendamento.funcionario.nome if agendamento.funcionario else '',
            f'{_preco(agendamento):.2f}',
            agendamento.status,
            'Sim' if agendamento.pago else 'Não',
        ])

    return saida.getvalue()


def painel_admin(hoje=None):
    hoje = hoje or date.today()
    do_dia = (
        Agendamento.query
        .filter_by(data_agendamento=hoje)
        .order_by(Agendamento.hora_agendamento.asc())
        .all()
    )
    return {
        'todayAppointments': [a.to_dict() for a in do_dia],
        'staffCount': Usuario.query.filter_by(tipo_usuario=TipoUsuario.FUNCIONARIO.value).count(),
        'servicesCount': Servico.query.count(),
        'pendingCount': Agendamento.query.filter_by(status=PENDENTE).count(),
    }


def painel_funcionario(funcionario_id, hoje=None):
    hoje = hoje or date.today()
    proxima_semana = hoje + timedelta(days=7)

    base = Agendamento.query.filter(Agendamento.funcionario_id == funcionario_id)
    do_dia = base.filter(Agendamento.data_agendamento == hoje).order_by(Agendamento.hora_agendamento.asc()).all()
    proximos = (
        base.filter(Agendamento.data_agendamento >= hoje, Agendamento.data_agendamento <= proxima_semana)
        .order_by(Agendamento.data_agendamento.asc(), Agendamento.hora_agendamento.asc())
        .all()
    )
    confirmados = base.filter(
        Agendamento.status == CONFIRMADO,
        Agendamento.data_agendamento >= hoje,
    ).count()

    return {
        'todayAppointments': [a.to_dict() for a in do_dia],
        'upcomingAppointments': [a.to_dict() for a in proximos],
        'confirmedCount': confirmados,
    }
