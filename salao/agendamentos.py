"""
Regras de agendamento: entrada do webhook, resolução de serviço e
funcionário, checagem de conflitos e transições de status.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from salao import db
from salao.errors import Conflito, ErroValidacao, NaoEncontrado
from salao.forms import WebhookAgendamentoForm, json_formdata, validar
from salao.models import (
    Agendamento, Disponibilidade, FuncionarioServico, Servico, StatusAgendamento,
    TipoUsuario, Usuario, pode_transitar,
)
from salao.validators import (
    HORA_ABERTURA, HORA_FECHAMENTO, contem_placeholder, dentro_do_expediente,
    hora_para_time, parse_uuid, somente_digitos,
)

logger = logging.getLogger(__name__)

INTERVALO_SLOTS_MINUTOS = 30

# Nomes aceitos para cada campo, na ordem de preferência. Comparação em
# minúsculas; cobre os rótulos que ferramentas no-code costumam enviar.
ALIASES_WEBHOOK = {
    'cliente_nome': ('cliente_nome', 'nome_cliente', 'nome do cliente', 'nome', 'cliente'),
    'cliente_telefone': (
        'cliente_telefone', 'telefone_cliente', 'telefone do cliente', 'telefone',
        'whatsapp', 'celular',
    ),
    'data_agendamento': ('data_agendamento', 'data do agendamento', 'data', 'dia'),
    'hora_agendamento': (
        'hora_agendamento', 'hora do agendamento', 'horario_agendamento', 'horario',
        'horário', 'hora',
    ),
    'funcionario_nome': (
        'funcionario_nome', 'nome_funcionario', 'nome do funcionario', 'nome do funcionário',
        'profissional', 'funcionario', 'funcionário',
    ),
    'funcionario_id': ('funcionario_id', 'id_funcionario', 'profissional_id'),
    'servico_nome': (
        'servico_nome', 'nome_servico', 'nome do servico', 'nome do serviço', 'servico', 'serviço',
    ),
    'servico_id': ('servico_id', 'id_servico'),
}

CAMPOS_OBRIGATORIOS = ('cliente_nome', 'cliente_telefone', 'data_agendamento', 'hora_agendamento')


@dataclass
class PedidoAgendamento:
    cliente_nome: str
    cliente_telefone: str
    data_agendamento: date
    hora_agendamento: time
    funcionario_id: Optional[UUID] = None
    funcionario_nome: Optional[str] = None
    servico_id: Optional[UUID] = None
    servico_nome: Optional[str] = None


def normalizar_payload(query_args, corpo):
    """
    Junta query string e corpo JSON num dict com os nomes canônicos.

    Chaves do corpo prevalecem sobre as da query string.
    """
    bruto = {}
    for chave, valor in query_args.items():
        bruto[str(chave).strip().lower()] = valor
    for chave, valor in (corpo or {}).items():
        bruto[str(chave).strip().lower()] = valor

    canonico = {}
    for campo, aliases in ALIASES_WEBHOOK.items():
        for alias in aliases:
            valor = bruto.get(alias)
            if valor is None or (isinstance(valor, str) and not valor.strip()):
                continue
            canonico[campo] = valor
            break
    return canonico


def montar_pedido(canonico):
    """Valida o payload canônico e devolve um ``PedidoAgendamento``."""
    faltando = [campo for campo in CAMPOS_OBRIGATORIOS if campo not in canonico]
    if faltando:
        raise ErroValidacao(f"Campos obrigatórios ausentes: {', '.join(faltando)}")

    for campo, valor in list(canonico.items()):
        if not contem_placeholder(valor):
            continue
        if campo in CAMPOS_OBRIGATORIOS:
            raise ErroValidacao(f'Campo {campo} contém um placeholder não substituído')
        # opcional com template vazio: trata como não informado
        logger.warning('webhook.placeholder_ignorado', extra={'campo': campo})
        del canonico[campo]

    form = validar(WebhookAgendamentoForm(formdata=json_formdata(canonico)))

    hora = hora_para_time(form.hora_agendamento.data)
    if not dentro_do_expediente(hora):
        raise ErroValidacao(
            f'Horário fora do horário de funcionamento ({HORA_ABERTURA:02d}:00 às {HORA_FECHAMENTO:02d}:00)'
        )

    return PedidoAgendamento(
        cliente_nome=form.cliente_nome.data,
        cliente_telefone=somente_digitos(form.cliente_telefone.data),
        data_agendamento=form.data_agendamento.data,
        hora_agendamento=hora,
        funcionario_id=parse_uuid(form.funcionario_id.data),
        funcionario_nome=form.funcionario_nome.data or None,
        servico_id=parse_uuid(form.servico_id.data),
        servico_nome=form.servico_nome.data or None,
    )


def _padrao_like(texto):
    escapado = texto.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    return f'%{escapado}%'


def funcionarios_habilitados(servico_id):
    return (
        Usuario.query
        .join(FuncionarioServico, FuncionarioServico.funcionario_id == Usuario.id)
        .filter(
            FuncionarioServico.servico_id == servico_id,
            Usuario.tipo_usuario == TipoUsuario.FUNCIONARIO.value,
        )
        .order_by(Usuario.nome.asc(), Usuario.id.asc())
    )


def esta_habilitado(funcionario_id, servico_id):
    return FuncionarioServico.query.filter_by(
        funcionario_id=funcionario_id,
        servico_id=servico_id,
    ).first() is not None


def resolver_servico(pedido):
    if pedido.servico_id:
        servico = db.session.get(Servico, pedido.servico_id)
        if servico:
            return servico

    ordenados = Servico.query.order_by(Servico.nome_servico.asc(), Servico.id.asc())

    if pedido.servico_nome:
        servico = ordenados.filter(
            Servico.nome_servico.ilike(_padrao_like(pedido.servico_nome), escape='\\')
        ).first()
        if servico:
            return servico

    servico = ordenados.first()
    if not servico:
        raise ErroValidacao('Nenhum serviço cadastrado')
    return servico


def resolver_funcionario(pedido, servico):
    if pedido.funcionario_id:
        funcionario = Usuario.query.filter_by(
            id=pedido.funcionario_id,
            tipo_usuario=TipoUsuario.FUNCIONARIO.value,
        ).first()
        if funcionario:
            if not esta_habilitado(funcionario.id, servico.id):
                raise ErroValidacao('Funcionário não habilitado para este serviço')
            return funcionario

    habilitados = funcionarios_habilitados(servico.id)

    if pedido.funcionario_nome:
        funcionario = habilitados.filter(
            Usuario.nome.ilike(_padrao_like(pedido.funcionario_nome), escape='\\')
        ).first()
        if funcionario:
            return funcionario

    funcionario = habilitados.first()
    if not funcionario:
        raise ErroValidacao('Nenhum funcionário habilitado para este serviço')
    return funcionario


def dia_semana(data):
    """0 = domingo ... 6 = sábado."""
    return data.isoweekday() % 7


def bloqueios_do_dia(funcionario_id, data):
    return Disponibilidade.query.filter_by(
        funcionario_id=funcionario_id,
        dia_semana=dia_semana(data),
    ).all()


def agendamentos_ativos(funcionario_id, data):
    return Agendamento.query.filter(
        Agendamento.funcionario_id == funcionario_id,
        Agendamento.data_agendamento == data,
        Agendamento.status != StatusAgendamento.CANCELADO.value,
    )


def verificar_conflitos(funcionario_id, data, hora):
    if any(bloqueio.bloqueia(hora) for bloqueio in bloqueios_do_dia(funcionario_id, data)):
        raise Conflito('Funcionário indisponível neste horário')

    existente = agendamentos_ativos(funcionario_id, data).filter(
        Agendamento.hora_agendamento == hora
    ).first()
    if existente:
        raise Conflito('Horário já reservado')


def _inserir(agendamento):
    db.session.add(agendamento)
    try:
        db.session.commit()
    except IntegrityError:
        # outra requisição ocupou o horário entre a checagem e o insert
        db.session.rollback()
        logger.warning(
            'agendamento.horario_disputado',
            extra={
                'funcionario_id': str(agendamento.funcionario_id),
                'data': agendamento.data_agendamento.isoformat(),
                'hora': agendamento.hora_agendamento.strftime('%H:%M'),
            },
        )
        raise Conflito('Horário já reservado')
    return agendamento


def criar_agendamento_webhook(pedido):
    servico = resolver_servico(pedido)
    funcionario = resolver_funcionario(pedido, servico)

    verificar_conflitos(funcionario.id, pedido.data_agendamento, pedido.hora_agendamento)

    agendamento = _inserir(Agendamento(
        cliente_nome=pedido.cliente_nome,
        cliente_telefone=pedido.cliente_telefone,
        funcionario_id=funcionario.id,
        servico_id=servico.id,
        data_agendamento=pedido.data_agendamento,
        hora_agendamento=pedido.hora_agendamento,
        status=StatusAgendamento.PENDENTE.value,
        pago=False,
    ))

    logger.info(
        'webhook.agendamento_criado',
        extra={
            'agendamento_id': str(agendamento.id),
            'funcionario_id': str(funcionario.id),
            'servico_id': str(servico.id),
        },
    )
    return agendamento


def criar_agendamento_manual(cliente_nome, cliente_telefone, funcionario_id, servico_id, data, hora):
    """Agendamento lançado pela equipe; já nasce confirmado."""
    if not dentro_do_expediente(hora):
        raise ErroValidacao('Horário fora do horário de funcionamento')

    funcionario = Usuario.query.filter_by(id=funcionario_id, tipo_usuario=TipoUsuario.FUNCIONARIO.value).first()
    if not funcionario:
        raise NaoEncontrado('Funcionário não encontrado')

    servico = db.session.get(Servico, servico_id)
    if not servico:
        raise NaoEncontrado('Serviço não encontrado')

    if not esta_habilitado(funcionario.id, servico.id):
        raise ErroValidacao('Funcionário não habilitado para este serviço')

    verificar_conflitos(funcionario.id, data, hora)

    return _inserir(Agendamento(
        cliente_nome=cliente_nome,
        cliente_telefone=somente_digitos(cliente_telefone),
        funcionario_id=funcionario.id,
        servico_id=servico.id,
        data_agendamento=data,
        hora_agendamento=hora,
        status=StatusAgendamento.CONFIRMADO.value,
        pago=False,
    ))


def horarios_disponiveis(funcionario_id, data):
    """Horários de 30 em 30 minutos no expediente, sem bloqueios nem reservas."""
    bloqueios = bloqueios_do_dia(funcionario_id, data)
    ocupados = {
        (a.hora_agendamento.hour, a.hora_agendamento.minute)
        for a in agendamentos_ativos(funcionario_id, data).all()
    }

    livres = []
    cursor = datetime.combine(data, time(HORA_ABERTURA, 0))
    limite = datetime.combine(data, time(HORA_FECHAMENTO, 0))
    while cursor < limite:
        hora = cursor.time()
        bloqueado = any(bloqueio.bloqueia(hora) for bloqueio in bloqueios)
        if not bloqueado and (hora.hour, hora.minute) not in ocupados:
            livres.append(hora.strftime('%H:%M'))
        cursor += timedelta(minutes=INTERVALO_SLOTS_MINUTOS)
    return livres


def atualizar_agendamento(agendamento, status=None, pago=None):
    """
    Aplica mudança de status e/ou pagamento.

    Tudo é validado antes de tocar no registro, então um 409 nunca deixa
    alteração pela metade na sessão.
    """
    status_atual = StatusAgendamento(agendamento.status)
    novo_status = StatusAgendamento(status) if status else status_atual

    if not pode_transitar(status_atual, novo_status):
        raise Conflito(
            f'Transição de status inválida: {status_atual.value} → {novo_status.value}'
        )

    novo_pago = agendamento.pago
    if novo_status == StatusAgendamento.CONCLUIDO and status_atual != StatusAgendamento.CONCLUIDO:
        novo_pago = True

    if pago is not None:
        if pago and novo_status == StatusAgendamento.CANCELADO:
            raise Conflito('Agendamento cancelado não pode ser marcado como pago')
        if not pago and novo_pago and novo_status == StatusAgendamento.CONCLUIDO:
            raise Conflito('O pagamento de um atendimento concluído não pode ser desfeito')
        novo_pago = pago

    agendamento.status = novo_status.value
    agendamento.pago = novo_pago
    db.session.commit()

    logger.info(
        'agendamento.atualizado',
        extra={'agendamento_id': str(agendamento.id), 'status': agendamento.status, 'pago': agendamento.pago},
    )
    return agendamento
