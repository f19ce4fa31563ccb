import uuid
from sqlalchemy import Uuid as UUID
from sqlalchemy.orm import relationship
from haulbook import db, bcrypt
from haulbook.utils.date_utils import utc_now

user_role = db.Enum('super_admin', 'user', name='user_role')
carrier_type = db.Enum('trip', 'company', name='carrier_type')
payment_status = db.Enum('unpaid', 'partial', 'paid', 'overdue', name='invoice_payment_status')
receipt_status = db.Enum('generated', 'sent', 'archived', name='receipt_status')

truck_drivers = db.Table(
    'truck_drivers',
    db.Column('truck_id', UUID(as_uuid=True), db.ForeignKey('trucks.id'), primary_key=True),
    db.Column('driver_id', UUID(as_uuid=True), db.ForeignKey('drivers.id'), primary_key=True)
)

invoice_cars = db.Table(
    'invoice_cars',
    db.Column('invoice_id', UUID(as_uuid=True), db.ForeignKey('invoices.id'), primary_key=True),
    db.Column('car_id', UUID(as_uuid=True), db.ForeignKey('cars.id'), primary_key=True)
)

class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = db.Column(db.String(50), unique=True, nullable=False)
    password = db.Column(db.String(255), nullable=False)
    role = db.Column(user_role, nullable=False, default='user')
    address = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    def set_password(self, password):
        self.password = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password, password)

class Account(db.Model):
    __tablename__ = 'accounts'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = db.Column(db.String(150), nullable=False)
    slug = db.Column(db.String(150), unique=True, nullable=False)
    initial_balance = db.Column(db.Numeric(14, 2), default=0)
    current_balance = db.Column(db.Numeric(14, 2), default=0)
    currency = db.Column(db.String(10), nullable=False)
    currency_symbol = db.Column(db.String(10), nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    transactions = relationship('AccountTransaction', back_populates='account', cascade='all, delete-orphan')

class AccountTransaction(db.Model):
    __tablename__ = 'account_transactions'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = db.Column(UUID(as_uuid=True), db.ForeignKey('accounts.id'), nullable=False)
    transaction_date = db.Column(db.DateTime, nullable=False, default=utc_now)
    details = db.Column(db.Text, nullable=False)
    credit = db.Column(db.Numeric(14, 2), default=0)
    debit = db.Column(db.Numeric(14, 2), default=0)
    destination = db.Column(db.String(255))  # transfers only
    rate_of_exchange = db.Column(db.Numeric(14, 6))
    recorded_by = db.Column(UUID(as_uuid=True), db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=utc_now)

    account = relationship('Account', back_populates='transactions')

class Driver(db.Model):
    __tablename__ = 'drivers'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = db.Column(UUID(as_uuid=True), db.ForeignKey('users.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(30))
    license_number = db.Column(db.String(50))
    email = db.Column(db.String(120))
    address = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utc_now)

    user = relationship('User')

class Truck(db.Model):
    __tablename__ = 'trucks'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = db.Column(UUID(as_uuid=True), db.ForeignKey('users.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    number = db.Column(db.String(50), nullable=False)
    current_meter_reading = db.Column(db.Numeric(12, 1), default=0)
    maintenance_interval = db.Column(db.Numeric(12, 1), default=1000)
    last_maintenance_km = db.Column(db.Numeric(12, 1), default=0)
    last_maintenance_date = db.Column(db.DateTime)
    maintenance_warning = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    drivers = relationship('Driver', secondary=truck_drivers, backref=db.backref('trucks', lazy=True))
    user = relationship('User', backref=db.backref('trucks', lazy=True))

class Carrier(db.Model):
    __tablename__ = 'carriers'
    __table_args__ = (
        db.UniqueConstraint('trip_number', 'user_id', name='uq_carrier_trip_number_user'),
        db.UniqueConstraint('type', 'name', 'user_id', name='uq_carrier_company_name_user'),
    )
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = db.Column(UUID(as_uuid=True), db.ForeignKey('users.id'), nullable=False)
    type = db.Column(carrier_type)  # NULL on legacy rows
    trip_number = db.Column(db.String(50))
    name = db.Column(db.String(255))
    date = db.Column(db.DateTime, nullable=False, default=utc_now)
    total_expense = db.Column(db.Numeric(14, 2), default=0)
    # NULL means the row predates the flag and counts as active
    is_active = db.Column(db.Boolean, nullable=True, default=True)
    truck_id = db.Column(UUID(as_uuid=True), db.ForeignKey('trucks.id'))
    distance = db.Column(db.Numeric(12, 1))
    meter_reading_at_trip = db.Column(db.Numeric(12, 1))
    carrier_name = db.Column(db.String(255))
    driver_name = db.Column(db.String(255))
    details = db.Column(db.Text)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    user = relationship('User', backref=db.backref('carriers', lazy=True))
    truck = relationship('Truck', backref=db.backref('carriers', lazy=True))
    cars = relationship('Car', back_populates='carrier', cascade='all, delete-orphan')
    expenses = relationship('Expense', back_populates='carrier', cascade='all, delete-orphan',
                            foreign_keys='Expense.carrier_id')

class Car(db.Model):
    __tablename__ = 'cars'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    carrier_id = db.Column(UUID(as_uuid=True), db.ForeignKey('carriers.id'), nullable=False)
    user_id = db.Column(UUID(as_uuid=True), db.ForeignKey('users.id'), nullable=False)
    stock_no = db.Column(db.String(100), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    chassis = db.Column(db.String(100), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    company_name = db.Column(db.String(255), nullable=False)  # upper-cased copy, not a FK
    date = db.Column(db.DateTime, nullable=False, default=utc_now)
    created_at = db.Column(db.DateTime, default=utc_now)

    carrier = relationship('Carrier', back_populates='cars')

class Expense(db.Model):
    __tablename__ = 'expenses'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    carrier_id = db.Column(UUID(as_uuid=True), db.ForeignKey('carriers.id'))
    truck_id = db.Column(UUID(as_uuid=True), db.ForeignKey('trucks.id'))
    user_id = db.Column(UUID(as_uuid=True), db.ForeignKey('users.id'), nullable=False)
    category = db.Column(db.String(30), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    details = db.Column(db.Text)
    date = db.Column(db.DateTime, nullable=False, default=utc_now)
    liters = db.Column(db.Numeric(12, 2))
    price_per_liter = db.Column(db.Numeric(12, 2))
    meter_reading = db.Column(db.Numeric(12, 1))
    driver_id = db.Column(UUID(as_uuid=True), db.ForeignKey('drivers.id'))
    synced_from_expense_id = db.Column(UUID(as_uuid=True), db.ForeignKey('expenses.id'))
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    carrier = relationship('Carrier', back_populates='expenses', foreign_keys=[carrier_id])
    truck = relationship('Truck', backref=db.backref('expenses', lazy=True))
    driver = relationship('Driver')

class Company(db.Model):
    __tablename__ = 'companies'
    __table_args__ = (
        db.UniqueConstraint('name', 'user_id', name='uq_company_name_user'),
    )
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = db.Column(UUID(as_uuid=True), db.ForeignKey('users.id'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.Text)
    credit_balance = db.Column(db.Numeric(14, 2), default=0)
    due_balance = db.Column(db.Numeric(14, 2), default=0)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

class Invoice(db.Model):
    __tablename__ = 'invoices'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    invoice_number = db.Column(db.String(50), unique=True, nullable=False)
    user_id = db.Column(UUID(as_uuid=True), db.ForeignKey('users.id'), nullable=False)
    sender_company_name = db.Column(db.String(255), nullable=False)
    sender_address = db.Column(db.Text)
    client_company_name = db.Column(db.String(255), nullable=False)
    invoice_date = db.Column(db.DateTime, nullable=False, default=utc_now)
    start_date = db.Column(db.DateTime)
    end_date = db.Column(db.DateTime)
    due_date = db.Column(db.DateTime)
    subtotal = db.Column(db.Numeric(14, 2), default=0)
    vat_percentage = db.Column(db.Numeric(5, 2), default=0)
    vat_amount = db.Column(db.Numeric(14, 2), default=0)
    total_amount = db.Column(db.Numeric(14, 2), default=0)
    descriptions = db.Column(db.JSON, default=list)
    trip_numbers = db.Column(db.JSON, default=list)
    is_active = db.Column(db.String(50), default='')  # free-form filter tag
    payment_status = db.Column(payment_status, nullable=False, default='unpaid')
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    cars = relationship('Car', secondary=invoice_cars, backref=db.backref('invoices', lazy=True))
    payments = relationship('InvoicePayment', back_populates='invoice', cascade='all, delete-orphan',
                            order_by='InvoicePayment.created_at')
    receipts = relationship('Receipt', back_populates='invoice', cascade='all, delete-orphan')

class InvoicePayment(db.Model):
    __tablename__ = 'invoice_payments'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    invoice_id = db.Column(UUID(as_uuid=True), db.ForeignKey('invoices.id'), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    excess_amount = db.Column(db.Numeric(14, 2), default=0)
    payment_method = db.Column(db.String(50), default='Cash')
    account_info = db.Column(db.String(255))
    payment_date = db.Column(db.DateTime, nullable=False, default=utc_now)
    notes = db.Column(db.Text)
    recorded_by = db.Column(UUID(as_uuid=True), db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=utc_now)

    invoice = relationship('Invoice', back_populates='payments')

class Receipt(db.Model):
    __tablename__ = 'receipts'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    receipt_number = db.Column(db.String(50), unique=True, nullable=False)
    invoice_id = db.Column(UUID(as_uuid=True), db.ForeignKey('invoices.id'), nullable=False)
    payment_id = db.Column(UUID(as_uuid=True), db.ForeignKey('invoice_payments.id', ondelete='SET NULL'))
    payment_index = db.Column(db.Integer, nullable=False)
    user_id = db.Column(UUID(as_uuid=True), db.ForeignKey('users.id'), nullable=False)
    invoice_number = db.Column(db.String(50))
    sender_company_name = db.Column(db.String(255))
    sender_address = db.Column(db.Text)
    client_company_name = db.Column(db.String(255))
    payment_amount = db.Column(db.Numeric(14, 2))
    amount_applied = db.Column(db.Numeric(14, 2))
    excess_amount = db.Column(db.Numeric(14, 2))
    payment_method = db.Column(db.String(50))
    account_info = db.Column(db.String(255))
    payment_date = db.Column(db.DateTime)
    invoice_date = db.Column(db.DateTime)
    invoice_amount = db.Column(db.Numeric(14, 2))
    notes = db.Column(db.Text)
    status = db.Column(receipt_status, nullable=False, default='generated')
    sent_at = db.Column(db.DateTime)
    sent_to = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    invoice = relationship('Invoice', back_populates='receipts')

class DetailedLog(db.Model):
    __tablename__ = 'detailed_logs'
    id = db.Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = db.Column(UUID(as_uuid=True), db.ForeignKey('users.id'))
    action = db.Column(db.String(255), nullable=False)
    table_name = db.Column(db.String(50), nullable=False)
    record_id = db.Column(UUID(as_uuid=True), nullable=False)
    old_values = db.Column(db.JSON)
    new_values = db.Column(db.JSON)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=utc_now)

    user = relationship('User', backref=db.backref('detailed_logs', lazy=True))
