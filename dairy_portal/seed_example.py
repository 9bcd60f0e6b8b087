from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select

from dairy_portal.db import SessionLocal, engine
from dairy_portal.models import Base, Customer, MilkType, Principal, PrincipalRole, TimeOfDay
from dairy_portal.security.passwords import hash_password
from dairy_portal.services.customer_service import create_customer
from dairy_portal.services.delivery_service import DeliveryInput, GroceryItemInput, create_delivery
from dairy_portal.services.milk_type_service import create_milk_type
from dairy_portal.services.payment_service import record_payment

DEMO_MILK_TYPES = [
    ('Cow Milk', Decimal('60.00'), 'Fresh full cream cow milk'),
    ('Buffalo Milk', Decimal('70.00'), None),
]

DEMO_CUSTOMERS = [
    ('Asha Patel', '12 Station Road', '+91 98765 43210'),
    ('Ravi Shah', '4 Lake View Society', '+91 91234 56780'),
    ('Meena Joshi', '27 Temple Street', None),
]


def _ensure_principal(db, username: str, password: str, role: PrincipalRole) -> None:
    principal = db.execute(select(Principal).where(Principal.username == username)).scalar_one_or_none()
    if not principal:
        db.add(Principal(username=username, password_hash=hash_password(password), role=role, active=True))


def seed() -> None:
    Base.metadata.create_all(engine)
    with SessionLocal() as db:
        _ensure_principal(db, 'admin', 'adminpass', PrincipalRole.ADMIN)
        _ensure_principal(db, 'operator', 'operatorpass', PrincipalRole.OPERATOR)

        milk_types = db.execute(select(MilkType).order_by(MilkType.id.asc())).scalars().all()
        if not milk_types:
            milk_types = [
                create_milk_type(db, name=name, price_per_liter=price, description=description)
                for name, price, description in DEMO_MILK_TYPES
            ]

        has_customers = db.execute(select(Customer.id).limit(1)).first()
        if not has_customers:
            customers = [
                create_customer(db, name=name, address=address, phone_number=phone)
                for name, address, phone in DEMO_CUSTOMERS
            ]
            first_of_month = date.today().replace(day=1)
            for offset in range(min(5, date.today().day)):
                day = first_of_month + timedelta(days=offset)
                for index, customer in enumerate(customers):
                    create_delivery(
                        db,
                        payload=DeliveryInput(
                            customer_id=customer.id,
                            delivery_date=day,
                            time_of_day=TimeOfDay.MORNING,
                            milk_type_id=milk_types[index % len(milk_types)].id,
                            quantity=Decimal('1.5') if index else Decimal('1'),
                        ),
                    )
            create_delivery(
                db,
                payload=DeliveryInput(
                    customer_id=customers[0].id,
                    delivery_date=first_of_month,
                    time_of_day=TimeOfDay.EVENING,
                    grocery_items=(GroceryItemInput(name='Paneer', price=Decimal('90.00'), unit='250 g'),),
                ),
            )
            record_payment(
                db,
                customer_id=customers[1].id,
                amount=Decimal('200.00'),
                payment_date=first_of_month,
                payment_method='UPI',
            )

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
