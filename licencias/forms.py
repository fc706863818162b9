"""WTForms form classes."""

from __future__ import annotations

from typing import Any

from flask_wtf import FlaskForm
from flask_wtf.file import FileField
from wtforms import BooleanField, DateField, IntegerField, PasswordField, SelectField, StringField, SubmitField
from wtforms.validators import DataRequired, Email, InputRequired, Length, NumberRange, ValidationError


OTHER_EMPLOYEE = "Otro"


def _strip(value: str | None) -> str | None:
    return value.strip() if value else value


class LoginForm(FlaskForm):
    email = StringField("Correo electrónico", validators=[DataRequired(), Email(), Length(max=255)], filters=[_strip])
    password = PasswordField("Contraseña", validators=[DataRequired(), Length(max=255)])
    remember = BooleanField("Recordarme")
    submit = SubmitField("Iniciar sesión")


class RegisterForm(FlaskForm):
    email = StringField("Correo electrónico", validators=[DataRequired(), Email(), Length(max=255)], filters=[_strip])
    password = PasswordField("Contraseña", validators=[DataRequired(), Length(min=8, max=255)])
    submit = SubmitField("Registrarse")


class ForgotPasswordForm(FlaskForm):
    email = StringField("Correo electrónico", validators=[DataRequired(), Email(), Length(max=255)], filters=[_strip])
    submit = SubmitField("Enviar enlace de recuperación")


class ResetPasswordForm(FlaskForm):
    new_password = PasswordField("Nueva contraseña", validators=[DataRequired(), Length(min=8, max=255)])
    confirm_password = PasswordField("Confirmar nueva contraseña", validators=[DataRequired(), Length(min=8, max=255)])
    submit = SubmitField("Actualizar contraseña")

    def validate_confirm_password(self, field: PasswordField) -> None:
        if field.data != self.new_password.data:
            raise ValidationError("Las contraseñas no coinciden.")


class LeaveFormBase(FlaskForm):
    dni = StringField("DNI", validators=[DataRequired(), Length(max=32)], filters=[_strip])
    categoria = StringField("Categoría", validators=[DataRequired(), Length(max=128)], filters=[_strip])
    oficina = StringField("Oficina", validators=[DataRequired(), Length(max=128)], filters=[_strip])
    email = StringField("Correo Electrónico", validators=[DataRequired(), Email(), Length(max=255)], filters=[_strip])
    celular = StringField("Celular", validators=[DataRequired(), Length(max=32)], filters=[_strip])
    submit = SubmitField("Enviar Solicitud")

    form_type = ""
    title = ""
    has_attachment = False

    def workflow_fields(self) -> dict[str, Any]:
        skip = {"submit", "csrf_token", "archivo_adjunto"}
        return {name: field.data for name, field in self._fields.items() if name not in skip}


class PersonNameMixin:
    nombre = StringField("Nombre", validators=[DataRequired(), Length(max=128)], filters=[_strip])
    apellido = StringField("Apellido", validators=[DataRequired(), Length(max=128)], filters=[_strip])


class SickLeaveForm(LeaveFormBase):
    form_type = "sick"
    title = "Licencia por Enfermedad"
    has_attachment = True

    nombre_empleado = SelectField("Nombre del Empleado", choices=[], validators=[DataRequired()])
    otro_nombre_empleado = StringField("Nombre y apellido", validators=[Length(max=255)], filters=[_strip])
    tipo_licencia_enfermedad = SelectField(
        "Tipo de Licencia",
        choices=[
            ("art22: enfermedad", "Art. 22: Enfermedad"),
            ("art29: atencion familiar", "Art. 29: Atención Familiar"),
        ],
        validators=[DataRequired()],
    )
    fecha_inicio = DateField("Fecha de Inicio", validators=[DataRequired()])
    fecha_fin = DateField("Fecha de Regreso", validators=[DataRequired()])
    cantidad_dias = IntegerField("Cantidad de Días", validators=[InputRequired(), NumberRange(min=1, max=15)])
    archivo_adjunto = FileField("Certificado Médico (Adjuntar)")

    def set_roster(self, roster: list[str]) -> None:
        self.nombre_empleado.choices = [(name, name) for name in roster] + [
            (OTHER_EMPLOYEE, "Otro (ingresar abajo)")
        ]

    def validate_otro_nombre_empleado(self, field: StringField) -> None:
        if self.nombre_empleado.data == OTHER_EMPLOYEE and not field.data:
            raise ValidationError("Ingresa el nombre completo del empleado.")

    def validate_fecha_fin(self, field: DateField) -> None:
        if self.fecha_inicio.data and field.data and field.data < self.fecha_inicio.data:
            raise ValidationError("La fecha de regreso debe ser igual o posterior a la fecha de inicio.")

    def workflow_fields(self) -> dict[str, Any]:
        values = super().workflow_fields()
        selected = values.pop("nombre_empleado")
        other = values.pop("otro_nombre_empleado")
        values["nombre_completo_empleado"] = other if selected == OTHER_EMPLOYEE else selected
        return values


class VacationLeaveForm(PersonNameMixin, LeaveFormBase):
    form_type = "vacation"
    title = "Licencia por Vacaciones"

    fecha_inicio = DateField("Fecha de Inicio", validators=[DataRequired()])
    fecha_fin = DateField("Fecha de Fin", validators=[DataRequired()])
    tipo_licencia_vacaciones = SelectField(
        "Tipo de Licencia (Vacaciones)",
        choices=[("enero", "Enero"), ("julio", "Julio"), ("otro", "Otro")],
        validators=[DataRequired()],
    )
    anio_vacaciones = IntegerField("Año", validators=[InputRequired(), NumberRange(min=2020, max=2030)])

    def validate_fecha_fin(self, field: DateField) -> None:
        if self.fecha_inicio.data and field.data and field.data < self.fecha_inicio.data:
            raise ValidationError("La fecha de fin debe ser igual o posterior a la fecha de inicio.")


class PersonalLeaveForm(PersonNameMixin, LeaveFormBase):
    form_type = "personal"
    title = "Razones Particulares"

    fecha_inasistencia_rp = DateField("Fecha de Inasistencia", validators=[DataRequired()])
    cantidad_dias = SelectField(
        "Cantidad de Días",
        choices=[("1", "1 día"), ("2", "2 días (Máximo)")],
        validators=[DataRequired()],
        coerce=int,
    )


class StudyLeaveForm(PersonNameMixin, LeaveFormBase):
    form_type = "study"
    title = "Licencia por Estudio"
    has_attachment = True

    fecha_inasistencia_estudio = DateField("Día de Inasistencia", validators=[DataRequired()])
    archivo_adjunto = FileField("Certificado de Examen (Adjuntar)")


LEAVE_FORMS: dict[str, type[LeaveFormBase]] = {
    form.form_type: form for form in (SickLeaveForm, VacationLeaveForm, PersonalLeaveForm, StudyLeaveForm)
}
