from flask_wtf import FlaskForm
from wtforms import (
    BooleanField, DecimalField, EmailField, FileField, IntegerField, PasswordField, SelectField,
    StringField, TextAreaField,
)
from wtforms.validators import DataRequired, EqualTo, Length, NumberRange, Optional, ValidationError

from .documents import is_valid_document
from .helpers import only_digits


class LoginForm(FlaskForm):
    email = StringField("Email", validators=[DataRequired(), Length(max=190)])
    password = PasswordField("Senha", validators=[DataRequired(), Length(min=4, max=128)])
    remember = BooleanField("Manter conectado")

class RegisterForm(FlaskForm):
    name = StringField("Nome", validators=[DataRequired(), Length(max=180)])
    email = EmailField("Email", validators=[DataRequired(), Length(max=190)])
    password = PasswordField("Senha", validators=[DataRequired(), Length(min=6, max=128)])
    confirm = PasswordField("Confirmar senha", validators=[DataRequired(), EqualTo("password", "As senhas não conferem")])
    whatsapp = StringField("WhatsApp", validators=[Optional(), Length(max=40)])
    # endereço opcional, vira o padrão
    zip_code = StringField("CEP", validators=[Optional(), Length(max=9)])
    street = StringField("Rua", validators=[Optional(), Length(max=200)])
    number = StringField("Número", validators=[Optional(), Length(max=20)])
    complement = StringField("Complemento", validators=[Optional(), Length(max=120)])
    neighborhood = StringField("Bairro", validators=[Optional(), Length(max=120)])
    city = StringField("Cidade", validators=[Optional(), Length(max=120)])
    state = StringField("UF", validators=[Optional(), Length(max=2)])

class CategoryForm(FlaskForm):
    name = StringField("Nome", validators=[DataRequired(), Length(max=120)])
    icon = StringField("Ícone", validators=[Optional(), Length(max=120)])
    position = IntegerField("Posição", validators=[Optional()], default=0)
    is_active = BooleanField("Ativa")

class ProductForm(FlaskForm):
    category_id = SelectField("Categoria", coerce=int, validators=[Optional()])
    name = StringField("Nome", validators=[DataRequired(), Length(max=180)])
    description = TextAreaField("Descrição", validators=[Optional(), Length(max=8000)])
    price = DecimalField("Preço", validators=[DataRequired(), NumberRange(min=0)], places=2)
    original_price = DecimalField("Preço original (de)", validators=[Optional(), NumberRange(min=0)], places=2)
    stock = IntegerField("Estoque", validators=[Optional(), NumberRange(min=0)], default=0)
    sizes = StringField("Tamanhos (ex: P,M,G,GG) (opcional)", validators=[Optional(), Length(max=80)])
    is_active = BooleanField("Ativo")
    image = FileField("Imagem (png/jpg/webp)")

class VariantForm(FlaskForm):
    name = StringField("Nome", validators=[DataRequired(), Length(max=120)])
    sku = StringField("SKU", validators=[Optional(), Length(max=80)])
    price = DecimalField("Preço", validators=[DataRequired(), NumberRange(min=0)], places=2)
    cost_price = DecimalField("Custo", validators=[Optional(), NumberRange(min=0)], places=2)
    stock = IntegerField("Estoque", validators=[Optional(), NumberRange(min=0)], default=0)
    flavor = StringField("Sabor", validators=[Optional(), Length(max=80)])
    color_hex = StringField("Cor (hex)", validators=[Optional(), Length(max=9)])
    visible = BooleanField("Visível", default=True)

class BannerForm(FlaskForm):
    title = StringField("Título", validators=[Optional(), Length(max=180)])
    subtitle = StringField("Subtítulo", validators=[Optional(), Length(max=240)])
    cta_text = StringField("Texto do botão", validators=[Optional(), Length(max=60)])
    cta_link = StringField("Link do botão", validators=[Optional(), Length(max=240)])
    is_active = BooleanField("Ativo")
    image = FileField("Imagem (png/jpg/webp)")

class SettingsForm(FlaskForm):
    store_name = StringField("Nome da loja", validators=[DataRequired(), Length(max=120)])
    store_description = StringField("Descrição", validators=[Optional(), Length(max=240)])
    store_email = StringField("Email de contato", validators=[Optional(), Length(max=190)])
    store_phone = StringField("Telefone", validators=[Optional(), Length(max=40)])
    whatsapp = StringField("WhatsApp (DDI+DDD+Número)", validators=[Optional(), Length(max=40)])
    topbar_note = StringField("Aviso no topo", validators=[Optional(), Length(max=180)])
    hero_type = SelectField("Hero da home", choices=[("none", "Nenhum"), ("image", "Imagem"), ("video", "Vídeo")])
    hero_image_url = StringField("Imagem do hero (URL)", validators=[Optional(), Length(max=500)])
    hero_video_url = StringField("Vídeo do hero (URL)", validators=[Optional(), Length(max=500)])
    hero_title = StringField("Título do hero", validators=[Optional(), Length(max=180)])
    hero_subtitle = StringField("Subtítulo do hero", validators=[Optional(), Length(max=240)])
    primary_color = StringField("Cor primária (hex)", validators=[Optional(), Length(max=20)])
    secondary_color = StringField("Cor secundária (hex)", validators=[Optional(), Length(max=20)])
    accent_color = StringField("Cor destaque (hex)", validators=[Optional(), Length(max=20)])
    social_instagram = StringField("Instagram", validators=[Optional(), Length(max=240)])
    social_facebook = StringField("Facebook", validators=[Optional(), Length(max=240)])
    seo_title = StringField("Título SEO", validators=[Optional(), Length(max=180)])
    seo_description = StringField("Descrição SEO", validators=[Optional(), Length(max=300)])
    free_shipping_threshold = DecimalField("Frete grátis acima de", validators=[DataRequired(), NumberRange(min=0)], places=2)
    shipping_price_per_km = DecimalField("Preço por km", validators=[DataRequired(), NumberRange(min=0)], places=2)
    shipping_min_cost = DecimalField("Frete mínimo", validators=[DataRequired(), NumberRange(min=0)], places=2)
    shipping_max_distance_km = IntegerField("Distância máxima (km)", validators=[DataRequired(), NumberRange(min=1)])

class CheckoutForm(FlaskForm):
    name = StringField("Nome completo", validators=[DataRequired(), Length(max=180)])
    document = StringField("CPF/CNPJ", validators=[DataRequired(), Length(max=18)])
    email = EmailField("E-mail", validators=[DataRequired(), Length(max=190)])
    phone = StringField("WhatsApp", validators=[Optional(), Length(max=40)])
    cep = StringField("CEP", validators=[DataRequired(), Length(max=9)])
    address = StringField("Endereço", validators=[DataRequired(), Length(max=240)])
    number = StringField("Número", validators=[DataRequired(), Length(max=20)])
    complement = StringField("Complemento", validators=[Optional(), Length(max=120)])
    neighborhood = StringField("Bairro", validators=[Optional(), Length(max=120)])
    city = StringField("Cidade", validators=[DataRequired(), Length(max=120)])
    state = StringField("UF", validators=[DataRequired(), Length(min=2, max=2)])
    notes = TextAreaField("Observações", validators=[Optional(), Length(max=2000)])

    def validate_document(self, field):
        if not is_valid_document(field.data):
            raise ValidationError("CPF/CNPJ inválido.")

    def validate_cep(self, field):
        if len(only_digits(field.data)) != 8:
            raise ValidationError("CEP inválido.")
