import logging
from datetime import date
from decimal import Decimal

from flask import Blueprint, Response, abort, current_app, jsonify, request
from flask_login import current_user, login_required

from salao import db, login_manager
from salao.agendamentos import (
    ALIASES_WEBHOOK, CAMPOS_OBRIGATORIOS, atualizar_agendamento, criar_agendamento_manual,
    criar_agendamento_webhook, horarios_disponiveis, montar_pedido, normalizar_payload,
)
from salao.config import em_producao
from salao.errors import Conflito, ErroValidacao, NaoAutenticado, NaoEncontrado
from salao.forms import (
    AgendamentoManualForm, AtualizarAgendamentoForm, DespesaForm, DisponibilidadeForm,
    EditarDespesaForm, FiltroAgendamentosForm, FuncionarioServicosForm, HorariosDisponiveisForm,
    IntervaloDatasForm, LoginForm, PagamentoForm, PeriodoDespesaForm, PeriodoRelatorioForm,
    ServicoForm, json_formdata, ler_json, query_formdata, validar,
)
from salao.models import (
    Agendamento, Despesa, Disponibilidade, FuncionarioServico, Servico, TipoUsuario, Usuario,
)
from salao.rate_limit import check_rate_limit
from salao.relatorios import (
    analise_lucro, desempenho_servicos, faturamento_por_funcionario, inicio_periodo,
    metricas_negocio, painel_admin, painel_funcionario, relatorio_financeiro_csv,
)
from salao.seguranca import verificar_senha, verificar_webhook_auth
from salao.sessao import clear_session_cookie, load_session, set_session_cookie
from salao.user_proxy import UserProxy
from salao.validators import hora_para_time, parse_uuid

logger = logging.getLogger(__name__)

bp = Blueprint('api', __name__, url_prefix='/api')


@login_manager.request_loader
def load_user_from_request(request):
    payload = load_session(request)
    if payload is None:
        return None
    return UserProxy.from_session(payload)


@login_manager.unauthorized_handler
def unauthorized():
    raise NaoAutenticado()


def exigir_admin():
    if not current_user.is_admin:
        logger.warning('auth.acesso_negado', extra={'usuario_id': current_user.id, 'path': request.path})
        abort(403, description='Sem permissão')


def exigir_funcionario():
    if not current_user.is_funcionario:
        abort(403, description='Acesso restrito a funcionários')


def form_json(form_cls):
    aliases = getattr(form_cls, 'ALIASES', None)
    return validar(form_cls(formdata=json_formdata(ler_json(), aliases)))


def form_query(form_cls):
    aliases = getattr(form_cls, 'ALIASES', None)
    return validar(form_cls(formdata=query_formdata(request.args, aliases)))


def carregar_agendamento(agendamento_id):
    agendamento = db.session.get(Agendamento, parse_uuid(agendamento_id))
    if not agendamento:
        raise NaoEncontrado('Agendamento não encontrado')
    if not current_user.is_admin and agendamento.funcionario_id != current_user.uuid:
        abort(403, description='Sem permissão')
    return agendamento


# =========================
# AUTENTICAÇÃO
# =========================

@bp.route('/auth/login', methods=['POST'])
def login():
    check_rate_limit('login')

    form = LoginForm(formdata=json_formdata(ler_json()))
    if not form.validate():
        raise ErroValidacao('Credenciais inválidas')

    usuario = Usuario.query.filter_by(email=form.email.data).first()
    if not usuario or not verificar_senha(usuario, form.password.data):
        logger.info('auth.login_falhou', extra={'email': form.email.data})
        raise NaoAutenticado('Credenciais inválidas')

    dados = {
        'id': str(usuario.id),
        'nome': usuario.nome,
        'email': usuario.email,
        'tipo_usuario': usuario.tipo_usuario,
    }
    logger.info('auth.login_ok', extra={'usuario_id': dados['id'], 'tipo_usuario': usuario.tipo_usuario})
    return set_session_cookie(jsonify({'success': True, 'user': dados}), dados)


@bp.route('/auth/logout', methods=['POST'])
def logout():
    return clear_session_cookie(jsonify({'success': True}))


@bp.route('/auth/me')
@login_required
def me():
    return jsonify({'user': current_user.to_dict()})


# =========================
# WEBHOOK
# =========================

def ler_corpo_webhook():
    if request.form:
        return request.form.to_dict()
    if not request.get_data():
        return {}
    dados = request.get_json(force=True, silent=True)
    if not isinstance(dados, dict):
        raise ErroValidacao('JSON inválido')
    return dados


@bp.route('/webhook/whatsapp', methods=['POST'])
def webhook_whatsapp():
    check_rate_limit('webhook')
    verificar_webhook_auth()

    canonico = normalizar_payload(request.args, ler_corpo_webhook())
    pedido = montar_pedido(canonico)
    agendamento = criar_agendamento_webhook(pedido)

    return jsonify({
        'success': True,
        'message': 'Agendamento criado com sucesso',
        'agendamento': {'id': str(agendamento.id), 'status': agendamento.status},
    }), 201


@bp.route('/webhook/whatsapp', methods=['GET'])
def webhook_whatsapp_uso():
    if em_producao(current_app.config):
        verificar_webhook_auth()

    return jsonify({
        'message': 'WhatsApp Webhook Endpoint',
        'usage': 'POST com os dados do agendamento na query string ou no corpo JSON',
        'auth': 'Header X-API-Key ou Authorization: Bearer <token>',
        'required_fields': list(CAMPOS_OBRIGATORIOS),
        'optional_fields': ['funcionario_nome', 'funcionario_id', 'servico_nome', 'servico_id'],
        'aliases': {campo: list(aliases[1:]) for campo, aliases in ALIASES_WEBHOOK.items()},
        'business_hours': '08:00 às 20:00',
        'example': {
            'cliente_nome': 'João Silva',
            'cliente_telefone': '(11) 99999-9999',
            'funcionario_nome': 'Maria',
            'servico_nome': 'Corte',
            'data_agendamento': '2025-01-20',
            'hora_agendamento': '14:00',
        },
    })


# =========================
# AGENDAMENTOS
# =========================

@bp.route('/appointments')
@login_required
def listar_agendamentos():
    form = form_query(FiltroAgendamentosForm)

    query = Agendamento.query
    if current_user.is_admin:
        if form.funcionario_id.data:
            query = query.filter(Agendamento.funcionario_id == parse_uuid(form.funcionario_id.data))
    else:
        if form.funcionario_id.data and parse_uuid(form.funcionario_id.data) != current_user.uuid:
            abort(403, description='Sem permissão')
        query = query.filter(Agendamento.funcionario_id == current_user.uuid)

    if form.dia.data:
        query = query.filter(Agendamento.data_agendamento == form.dia.data)
    if form.status.data:
        query = query.filter(Agendamento.status == form.status.data)

    agendamentos = query.order_by(
        Agendamento.data_agendamento.desc(), Agendamento.hora_agendamento.asc()
    ).all()
    return jsonify([a.to_dict() for a in agendamentos])


@bp.route('/appointments', methods=['POST'])
@login_required
def novo_agendamento():
    form = form_json(AgendamentoManualForm)

    agendamento = criar_agendamento_manual(
        cliente_nome=form.cliente_nome.data,
        cliente_telefone=form.cliente_telefone.data,
        funcionario_id=parse_uuid(form.funcionario_id.data),
        servico_id=parse_uuid(form.servico_id.data),
        data=form.data_agendamento.data,
        hora=hora_para_time(form.hora_agendamento.data),
    )
    logger.info('agendamento.manual_criado', extra={'agendamento_id': str(agendamento.id), 'por': current_user.id})
    return jsonify(agendamento.to_dict()), 201


@bp.route('/appointments/available-times')
@login_required
def horarios_livres():
    form = form_query(HorariosDisponiveisForm)
    funcionario_id = parse_uuid(form.funcionario_id.data)
    return jsonify({
        'funcionario_id': str(funcionario_id),
        'data': form.dia.data.isoformat(),
        'horarios': horarios_disponiveis(funcionario_id, form.dia.data),
    })


@bp.route('/appointments/update', methods=['PATCH'])
@login_required
def atualizar_status():
    form = form_json(AtualizarAgendamentoForm)
    agendamento = carregar_agendamento(form.appointmentId.data)

    atualizar_agendamento(
        agendamento,
        status=form.status.data or None,
        pago=form.pago.data if form.pago_enviado() else None,
    )
    return jsonify({'success': True, 'data': agendamento.to_dict()})


@bp.route('/appointments/payment', methods=['PATCH'])
@login_required
def atualizar_pagamento():
    form = form_json(PagamentoForm)
    agendamento = carregar_agendamento(form.appointmentId.data)

    atualizar_agendamento(agendamento, pago=form.pago.data)
    return jsonify({'success': True, 'data': agendamento.to_dict()})


# =========================
# FUNCIONÁRIOS E SERVIÇOS
# =========================

@bp.route('/employees')
@login_required
def listar_funcionarios():
    exigir_admin()
    funcionarios = (
        Usuario.query
        .filter_by(tipo_usuario=TipoUsuario.FUNCIONARIO.value)
        .order_by(Usuario.nome.asc())
        .all()
    )
    return jsonify([f.to_dict() for f in funcionarios])


@bp.route('/employee-services')
@login_required
def servicos_do_funcionario():
    exigir_admin()
    funcionario_id = parse_uuid(request.args.get('employeeId'))
    if funcionario_id is None:
        raise ErroValidacao('employeeId inválido')

    vinculos = FuncionarioServico.query.filter_by(funcionario_id=funcionario_id).all()
    return jsonify({
        'employeeId': str(funcionario_id),
        'serviceIds': sorted(str(v.servico_id) for v in vinculos),
    })


@bp.route('/employee-services', methods=['POST'])
@login_required
def atribuir_servicos():
    exigir_admin()
    form = form_json(FuncionarioServicosForm)

    funcionario = Usuario.query.filter_by(
        id=parse_uuid(form.employeeId.data),
        tipo_usuario=TipoUsuario.FUNCIONARIO.value,
    ).first()
    if not funcionario:
        raise NaoEncontrado('Funcionário não encontrado')

    servico_ids = form.servico_uuids()
    if servico_ids:
        encontrados = {s.id for s in Servico.query.filter(Servico.id.in_(servico_ids)).all()}
        if len(encontrados) != len(servico_ids):
            raise ErroValidacao('Serviço não encontrado')

    # Substitui o conjunto inteiro numa única transação
    FuncionarioServico.query.filter_by(funcionario_id=funcionario.id).delete()
    for servico_id in servico_ids:
        db.session.add(FuncionarioServico(funcionario_id=funcionario.id, servico_id=servico_id))
    db.session.commit()

    logger.info(
        'equipe.servicos_atualizados',
        extra={'funcionario_id': str(funcionario.id), 'total': len(servico_ids)},
    )
    return jsonify({'success': True, 'serviceIds': [str(s) for s in servico_ids]})


@bp.route('/services')
@login_required
def listar_servicos():
    servicos = Servico.query.order_by(Servico.nome_servico.asc()).all()
    return jsonify([s.to_dict() for s in servicos])


@bp.route('/services', methods=['POST'])
@login_required
def cadastrar_servico():
    exigir_admin()
    form = form_json(ServicoForm)

    servico = Servico(
        nome_servico=form.nome_servico.data,
        descricao=form.descricao.data or None,
        preco=form.preco.data.quantize(Decimal('0.01')),
        duracao_minutos=form.duracao_minutos.data,
    )
    db.session.add(servico)
    db.session.commit()
    return jsonify(servico.to_dict()), 201


@bp.route('/services/<uuid:servico_id>', methods=['PUT'])
@login_required
def editar_servico(servico_id):
    exigir_admin()
    servico = db.get_or_404(Servico, servico_id, description='Serviço não encontrado')
    form = form_json(ServicoForm)

    servico.nome_servico = form.nome_servico.data
    servico.descricao = form.descricao.data or None
    servico.preco = form.preco.data.quantize(Decimal('0.01'))
    servico.duracao_minutos = form.duracao_minutos.data
    db.session.commit()
    return jsonify(servico.to_dict())


@bp.route('/services/<uuid:servico_id>', methods=['DELETE'])
@login_required
def excluir_servico(servico_id):
    exigir_admin()
    servico = db.get_or_404(Servico, servico_id, description='Serviço não encontrado')

    if Agendamento.query.filter_by(servico_id=servico.id).first():
        raise Conflito('Serviço possui agendamentos e não pode ser excluído')

    db.session.delete(servico)
    db.session.commit()
    return jsonify({'success': True})


# =========================
# DISPONIBILIDADE (BLOQUEIOS)
# =========================

@bp.route('/availability')
@login_required
def listar_bloqueios():
    query = Disponibilidade.query
    if current_user.is_admin:
        funcionario_id = parse_uuid(request.args.get('funcionario_id'))
        if funcionario_id:
            query = query.filter_by(funcionario_id=funcionario_id)
    else:
        query = query.filter_by(funcionario_id=current_user.uuid)

    bloqueios = query.order_by(Disponibilidade.dia_semana.asc(), Disponibilidade.hora_inicio.asc()).all()
    return jsonify([b.to_dict() for b in bloqueios])


@bp.route('/availability', methods=['POST'])
@login_required
def adicionar_bloqueio():
    exigir_funcionario()
    form = form_json(DisponibilidadeForm)

    bloqueio = Disponibilidade(
        funcionario_id=current_user.uuid,
        dia_semana=form.dia_semana.data,
        hora_inicio=hora_para_time(form.hora_inicio.data),
        hora_fim=hora_para_time(form.hora_fim.data),
    )
    db.session.add(bloqueio)
    db.session.commit()
    return jsonify(bloqueio.to_dict()), 201


@bp.route('/availability/<uuid:bloqueio_id>', methods=['DELETE'])
@login_required
def remover_bloqueio(bloqueio_id):
    exigir_funcionario()
    bloqueio = db.get_or_404(Disponibilidade, bloqueio_id, description='Horário não encontrado')
    if bloqueio.funcionario_id != current_user.uuid:
        abort(403, description='Sem permissão')

    db.session.delete(bloqueio)
    db.session.commit()
    return jsonify({'success': True})


# =========================
# DESPESAS
# =========================

@bp.route('/expenses')
@login_required
def listar_despesas():
    exigir_admin()
    form = form_query(PeriodoDespesaForm)

    query = Despesa.query
    inicio = inicio_periodo(form.period.data)
    if inicio is not None:
        query = query.filter(Despesa.data >= inicio)

    despesas = query.order_by(Despesa.data.desc()).all()
    return jsonify([d.to_dict() for d in despesas])


@bp.route('/expenses', methods=['POST'])
@login_required
def criar_despesa():
    exigir_admin()
    form = form_json(DespesaForm)

    despesa = Despesa(
        descricao=form.descricao.data,
        valor=form.valor.data.quantize(Decimal('0.01')),
        categoria=form.categoria.data,
        data=form.data_despesa.data,
        observacoes=form.observacoes.data or None,
    )
    db.session.add(despesa)
    db.session.commit()

    logger.info('despesa.criada', extra={'despesa_id': str(despesa.id)})
    return jsonify(despesa.to_dict()), 201


@bp.route('/expenses', methods=['PUT'])
@login_required
def editar_despesa():
    exigir_admin()
    form = form_json(EditarDespesaForm)

    despesa = db.session.get(Despesa, parse_uuid(form.id.data))
    if not despesa:
        raise NaoEncontrado('Despesa não encontrada')

    despesa.descricao = form.descricao.data
    despesa.valor = form.valor.data.quantize(Decimal('0.01'))
    despesa.categoria = form.categoria.data
    despesa.data = form.data_despesa.data
    despesa.observacoes = form.observacoes.data or None
    db.session.commit()
    return jsonify(despesa.to_dict())


@bp.route('/expenses', methods=['DELETE'])
@login_required
def excluir_despesa():
    exigir_admin()
    despesa_id = parse_uuid(request.args.get('id'))
    if despesa_id is None:
        raise ErroValidacao('ID é obrigatório')

    despesa = db.session.get(Despesa, despesa_id)
    if not despesa:
        raise NaoEncontrado('Despesa não encontrada')

    db.session.delete(despesa)
    db.session.commit()
    return jsonify({'success': True})


# =========================
# RELATÓRIOS E PAINÉIS
# =========================

@bp.route('/reports/business-metrics')
@login_required
def relatorio_metricas():
    exigir_admin()
    return jsonify(metricas_negocio())


@bp.route('/reports/employee-revenue')
@login_required
def relatorio_funcionarios():
    exigir_admin()
    form = form_query(PeriodoRelatorioForm)
    return jsonify(faturamento_por_funcionario(form.period.data))


@bp.route('/reports/service-performance')
@login_required
def relatorio_servicos():
    exigir_admin()
    form = form_query(PeriodoRelatorioForm)
    return jsonify(desempenho_servicos(form.period.data))


@bp.route('/reports/profit-analysis')
@login_required
def relatorio_lucro():
    exigir_admin()
    form = form_query(PeriodoDespesaForm)
    return jsonify(analise_lucro(form.period.data))


@bp.route('/reports/financial')
@login_required
def relatorio_financeiro():
    exigir_admin()
    form = form_query(IntervaloDatasForm)

    conteudo = relatorio_financeiro_csv(form.startDate.data, form.endDate.data)
    nome_arquivo = f"relatorio-financeiro-{date.today().isoformat()}.csv"
    return Response(
        conteudo,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename="{nome_arquivo}"'},
    )


@bp.route('/dashboard')
@login_required
def painel():
    exigir_admin()
    return jsonify(painel_admin())


@bp.route('/staff/dashboard')
@login_required
def painel_equipe():
    exigir_funcionario()
    return jsonify(painel_funcionario(current_user.uuid))
