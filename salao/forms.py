from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import StringField, PasswordField, DecimalField, IntegerField, TextAreaField, SelectField, SelectMultipleField, DateField, BooleanField
from wtforms.validators import DataRequired, Email, Length, Optional, NumberRange, AnyOf, ValidationError

from salao.errors import ErroValidacao
from salao.models import StatusAgendamento
from salao.validators import (
    Booleano, HoraValida, Obrigatorio, Telefone, UUIDValido, ValorPositivo,
    hora_para_time, parse_uuid, texto,
)

STATUS_VALIDOS = [status.value for status in StatusAgendamento]
MAX_SERVICOS_POR_FUNCIONARIO = 50


def ler_json():
    """Corpo JSON como dict; 400 se vier malformado ou não for objeto."""
    dados = request.get_json(silent=True)
    if not isinstance(dados, dict):
        raise ErroValidacao('JSON inválido')
    return dados


def _valor_formulario(chave, valor):
    # os campos do WTForms esperam texto, como num POST de formulário
    if isinstance(valor, bool):
        return 'true' if valor else 'false'
    if isinstance(valor, (int, float, str)):
        return str(valor)
    raise ErroValidacao(f'Campo {chave} com tipo inválido')


def json_formdata(dados, aliases=None):
    # null no JSON equivale a campo ausente; listas viram valores múltiplos
    aliases = aliases or {}
    formdata = MultiDict()
    for chave, valor in dados.items():
        if valor is None:
            continue
        nome = aliases.get(chave, chave)
        if isinstance(valor, list):
            for item in valor:
                formdata.add(nome, _valor_formulario(chave, item))
        else:
            formdata.add(nome, _valor_formulario(chave, valor))
    return formdata


def query_formdata(args, aliases=None):
    aliases = aliases or {}
    return MultiDict([(aliases.get(chave, chave), valor) for chave, valor in args.items(multi=True)])


def primeiro_erro(form):
    for erros in form.errors.values():
        if erros:
            return erros[0]
    return 'Dados inválidos'


def validar(form):
    if not form.validate():
        raise ErroValidacao(primeiro_erro(form))
    return form


class LoginForm(FlaskForm):
    email = StringField('Email', filters=[texto], validators=[DataRequired('Email é obrigatório'), Email('Email inválido'), Length(max=255)])
    password = PasswordField('Senha', validators=[DataRequired('Senha é obrigatória'), Length(min=3, max=100)])


class WebhookAgendamentoForm(FlaskForm):
    cliente_nome = StringField('cliente_nome', filters=[texto], validators=[
        DataRequired('cliente_nome é obrigatório'),
        Length(min=3, max=100, message='cliente_nome deve ter entre 3 e 100 caracteres'),
    ])
    cliente_telefone = StringField('cliente_telefone', filters=[texto], validators=[
        DataRequired('cliente_telefone é obrigatório'),
        Telefone(),
    ])
    data_agendamento = DateField('data_agendamento', format='%Y-%m-%d', validators=[
        Obrigatorio('data_agendamento é obrigatório'),
    ])
    hora_agendamento = StringField('hora_agendamento', filters=[texto], validators=[
        DataRequired('hora_agendamento é obrigatório'),
        HoraValida(),
    ])
    funcionario_nome = StringField('funcionario_nome', filters=[texto], validators=[Optional(), Length(max=100)])
    funcionario_id = StringField('funcionario_id', filters=[texto], validators=[Optional()])
    servico_nome = StringField('servico_nome', filters=[texto], validators=[Optional(), Length(max=100)])
    servico_id = StringField('servico_id', filters=[texto], validators=[Optional()])

    def validate_data_agendamento(self, field):
        if field.data is None:
            field.errors[:] = []
            raise ValidationError('Data inválida (use YYYY-MM-DD)')


class AgendamentoManualForm(FlaskForm):
    cliente_nome = StringField('Nome do Cliente', filters=[texto], validators=[DataRequired(), Length(min=3, max=100)])
    cliente_telefone = StringField('Telefone do Cliente', filters=[texto], validators=[DataRequired(), Telefone()])
    funcionario_id = StringField('funcionario_id', filters=[texto], validators=[DataRequired(), UUIDValido()])
    servico_id = StringField('servico_id', filters=[texto], validators=[DataRequired(), UUIDValido()])
    data_agendamento = DateField('Data', format='%Y-%m-%d', validators=[Obrigatorio()])
    hora_agendamento = StringField('Horário', filters=[texto], validators=[DataRequired(), HoraValida()])


class AtualizarAgendamentoForm(FlaskForm):
    appointmentId = StringField('appointmentId', filters=[texto], validators=[
        DataRequired('ID do agendamento é obrigatório'), UUIDValido(),
    ])
    status = StringField('status', filters=[texto], validators=[
        Optional(), AnyOf(STATUS_VALIDOS, message='Status inválido'),
    ])
    pago = BooleanField('pago', validators=[Booleano()])

    def pago_enviado(self):
        return bool(self.pago.raw_data)


class PagamentoForm(FlaskForm):
    appointmentId = StringField('appointmentId', filters=[texto], validators=[DataRequired(), UUIDValido()])
    pago = BooleanField('pago', validators=[Obrigatorio('pago é obrigatório'), Booleano()])


class DespesaForm(FlaskForm):
    # "data" é reservado pelo Form; o JSON continua usando "data"
    ALIASES = {'data': 'data_despesa'}

    descricao = StringField('Descrição', filters=[texto], validators=[
        DataRequired('Descrição é obrigatória'),
        Length(min=3, max=255, message='Descrição deve ter entre 3 e 255 caracteres'),
    ])
    valor = DecimalField('Valor', places=2, validators=[Obrigatorio('Valor é obrigatório'), ValorPositivo()])
    categoria = StringField('Categoria', filters=[texto], validators=[
        DataRequired('Categoria é obrigatória'), Length(min=2, max=100),
    ])
    data_despesa = DateField('Data', format='%Y-%m-%d', validators=[Obrigatorio('Data é obrigatória')])
    observacoes = TextAreaField('Observações', filters=[texto], validators=[Optional(), Length(max=500)])

    def validate_data_despesa(self, field):
        if field.data is None:
            field.errors[:] = []
            raise ValidationError('Data inválida (use YYYY-MM-DD)')


class EditarDespesaForm(DespesaForm):
    id = StringField('ID', filters=[texto], validators=[DataRequired('ID é obrigatório'), UUIDValido()])


class PeriodoDespesaForm(FlaskForm):
    period = SelectField('Período', choices=['7', '30', '90', '365', 'all'], default='30')


class PeriodoRelatorioForm(FlaskForm):
    period = SelectField('Período', choices=['week', 'month', 'all'], default='month')


class IntervaloDatasForm(FlaskForm):
    startDate = DateField('Data inicial', format='%Y-%m-%d', validators=[Optional()])
    endDate = DateField('Data final', format='%Y-%m-%d', validators=[Optional()])


class FuncionarioServicosForm(FlaskForm):
    employeeId = StringField('employeeId', filters=[texto], validators=[DataRequired(), UUIDValido()])
    serviceIds = SelectMultipleField('serviceIds', coerce=str, validate_choice=False)

    def validate_serviceIds(self, field):
        ids = field.data or []
        if len(ids) > MAX_SERVICOS_POR_FUNCIONARIO:
            raise ValidationError('Muitos serviços selecionados')
        if any(parse_uuid(valor) is None for valor in ids):
            raise ValidationError('serviceIds: UUID inválido')

    def servico_uuids(self):
        # sem duplicatas, mantendo a ordem enviada
        vistos = []
        for valor in self.serviceIds.data or []:
            servico_id = parse_uuid(valor)
            if servico_id not in vistos:
                vistos.append(servico_id)
        return vistos


class ServicoForm(FlaskForm):
    nome_servico = StringField('Nome do Serviço', filters=[texto], validators=[DataRequired(), Length(max=100)])
    descricao = TextAreaField('Descrição', filters=[texto], validators=[Optional(), Length(max=1000)])
    preco = DecimalField('Preço', places=2, validators=[Obrigatorio(), NumberRange(min=0, message='Preço inválido')])
    duracao_minutos = IntegerField('Duração (minutos)', validators=[
        Obrigatorio(), NumberRange(min=1, max=600, message='Duração inválida'),
    ])


class DisponibilidadeForm(FlaskForm):
    dia_semana = IntegerField('dia_semana', validators=[
        Obrigatorio(), NumberRange(min=0, max=6, message='Dia da semana inválido'),
    ])
    hora_inicio = StringField('hora_inicio', filters=[texto], validators=[DataRequired(), HoraValida()])
    hora_fim = StringField('hora_fim', filters=[texto], validators=[DataRequired(), HoraValida()])

    def validate_hora_fim(self, field):
        if self.hora_inicio.errors or not self.hora_inicio.data:
            return
        if hora_para_time(self.hora_inicio.data) >= hora_para_time(field.data):
            raise ValidationError('A hora de início deve ser menor que a hora de fim.')


class HorariosDisponiveisForm(FlaskForm):
    ALIASES = {'data': 'dia'}

    funcionario_id = StringField('funcionario_id', filters=[texto], validators=[DataRequired(), UUIDValido()])
    dia = DateField('data', format='%Y-%m-%d', validators=[Obrigatorio()])


class FiltroAgendamentosForm(FlaskForm):
    ALIASES = {'data': 'dia'}

    dia = DateField('data', format='%Y-%m-%d', validators=[Optional()])
    funcionario_id = StringField('funcionario_id', filters=[texto], validators=[Optional(), UUIDValido()])
    status = StringField('status', filters=[texto], validators=[Optional(), AnyOf(STATUS_VALIDOS, message='Status inválido')])
