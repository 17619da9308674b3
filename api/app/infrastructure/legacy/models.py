"""
Modelos de solo lectura de la base de datos legacy (MySQL).

Los nombres de tabla/columna siguen el esquema legacy; los atributos Python
usan nombres normalizados. Nunca se emiten escrituras sobre estas tablas.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Numeric

from app.infrastructure.legacy.session import LegacyBase


class LegacyRequest(LegacyBase):
    """Ticket / solicitud de soporte legacy."""

    __tablename__ = "QD_requests"

    id = Column("RID", Integer, primary_key=True)
    subject = Column(String(500), nullable=True)
    customer_id = Column("customerID", Integer, nullable=True)
    manager_id = Column("managerID", Integer, nullable=True)
    closed = Column(Integer, nullable=False, default=0)
    type = Column(String(100), nullable=True)
    created_at = Column("add_date", DateTime, nullable=True)
    updated_at = Column("update_date", DateTime, nullable=True)


class LegacyAnswer(LegacyBase):
    """Respuesta (hijo) de un ticket, ordenada por add_date."""

    __tablename__ = "QD_answers"

    id = Column("AID", Integer, primary_key=True)
    request_id = Column("RID", Integer, nullable=False, index=True)
    customer_id = Column("customerID", Integer, nullable=True)
    text = Column(Text, nullable=True)
    created_at = Column("add_date", DateTime, nullable=True)


class LegacyCustomer(LegacyBase):
    """Cliente legacy. Los empleados también son filas de esta tabla (is_manager=1)."""

    __tablename__ = "SS_customers"

    id = Column("customerID", Integer, primary_key=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    email = Column("Email", String(255), nullable=True)
    phone = Column(String(64), nullable=True)
    position = Column(String(255), nullable=True)
    is_manager = Column(Integer, nullable=False, default=0)
    default_counterparty_id = Column(Integer, nullable=True)


class LegacyManager(LegacyBase):
    """Empleado legacy; user_id apunta a su fila de SS_customers."""

    __tablename__ = "manager"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    alias = Column(String(255), nullable=True)
    active = Column(Integer, nullable=False, default=1)


class LegacyCounterparty(LegacyBase):
    """Contraparte (organización)."""

    __tablename__ = "counterparty"

    id = Column(Integer, primary_key=True)
    name = Column(String(500), nullable=True)
    inn = Column(String(32), nullable=True)
    kpp = Column(String(32), nullable=True)
    ogrn = Column(String(32), nullable=True)
    type = Column(String(32), nullable=True)
    director = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    bank_name = Column(String(255), nullable=True)
    bank_bik = Column(String(32), nullable=True)
    employee_count = Column(Integer, nullable=True)
    status = Column(String(32), nullable=True)


class LegacyCategory(LegacyBase):
    """Categoria de productos."""

    __tablename__ = "SS_categories"

    id = Column("categoryID", Integer, primary_key=True)
    name = Column(String(255), nullable=True)
    parent = Column(Integer, nullable=True)
    is_active = Column(Integer, nullable=False, default=1)
    sort_order = Column(Integer, nullable=False, default=0)


class LegacyProduct(LegacyBase):
    """Producto del catálogo."""

    __tablename__ = "SS_products"

    id = Column("productID", Integer, primary_key=True)
    name = Column(String(500), nullable=True)
    product_code = Column(String(100), nullable=True)
    brief_description = Column(Text, nullable=True)
    category_id = Column("categoryID", Integer, nullable=True)
    price = Column("Price", Numeric(14, 2), nullable=True)
    base_price = Column(Numeric(14, 2), nullable=True)
    fob_price = Column(Numeric(14, 2), nullable=True)
    warranty = Column(Integer, nullable=True)
    factory_name = Column(String(255), nullable=True)
    in_stock = Column(Integer, nullable=True)
    enabled = Column(Integer, nullable=False, default=1)
    uri = Column(String(255), nullable=True)


class LegacyDealStage(LegacyBase):
    """Etapa del embudo de ventas."""

    __tablename__ = "deal_stage"

    id = Column(Integer, primary_key=True)
    alias = Column(String(64), nullable=True)
    title = Column(String(255), nullable=False)
    color = Column(String(16), nullable=True)
    sort_order = Column(Integer, nullable=True)


class LegacyDeal(LegacyBase):
    """Negocio (deal) legacy."""

    __tablename__ = "deal"

    id = Column(Integer, primary_key=True)
    title = Column(String(500), nullable=True)
    counterparty_id = Column(Integer, nullable=True)
    employee_user_id = Column(Integer, nullable=True)
    deal_stage_id = Column(Integer, nullable=True)
    amount = Column(Numeric(16, 2), nullable=True)
    completion = Column(String(16), nullable=True)
    created_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=True)
