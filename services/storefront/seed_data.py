import logging

from sqlalchemy.orm import Session

from .models import Category, Product, User, UserRole

logger = logging.getLogger(__name__)

DEMO_ADMIN_EMAIL = "admin@storefront.local"
DEMO_CUSTOMER_EMAIL = "customer@storefront.local"

# (category, name, description, price in INR, stock)
SAMPLE_PRODUCTS = [
    ("Fruits", "Bananas (1 dozen)", "Fresh robusta bananas", 60.0, 80),
    ("Fruits", "Apples (1 kg)", "Shimla apples", 180.0, 40),
    ("Fruits", "Pomegranate (500 g)", "Bhagwa pomegranates", 120.0, 30),
    ("Vegetables", "Onions (1 kg)", "Red onions", 40.0, 120),
    ("Vegetables", "Tomatoes (1 kg)", "Farm tomatoes", 35.0, 100),
    ("Vegetables", "Potatoes (1 kg)", "Table potatoes", 30.0, 150),
    ("Vegetables", "Spinach (250 g)", "Palak bunch", 25.0, 50),
    ("Dairy", "Toned Milk (1 L)", "Pasteurised toned milk", 56.0, 60),
    ("Dairy", "Paneer (200 g)", "Fresh malai paneer", 90.0, 25),
    ("Dairy", "Curd (400 g)", "Set curd cup", 45.0, 40),
    ("Staples", "Basmati Rice (1 kg)", "Aged basmati rice", 140.0, 70),
    ("Staples", "Whole Wheat Atta (5 kg)", "Chakki fresh atta", 260.0, 35),
    ("Staples", "Toor Dal (1 kg)", "Unpolished toor dal", 165.0, 45),
    ("Snacks", "Salted Peanuts (200 g)", "Roasted peanuts", 50.0, 60),
    ("Snacks", "Masala Chips (90 g)", "Spicy potato chips", 20.0, 90),
]


def seed_catalog(db: Session) -> None:
    """Seed database with demo users, categories and products."""
    logger.info("Seeding catalog...")

    for email, name, role in (
        (DEMO_ADMIN_EMAIL, "Store Admin", UserRole.ADMIN),
        (DEMO_CUSTOMER_EMAIL, "Demo Customer", UserRole.CUSTOMER),
    ):
        if db.query(User).filter(User.email == email).first() is None:
            db.add(User(email=email, name=name, role=role.value))

    categories = {category.name: category for category in db.query(Category).all()}
    created = 0
    for category_name, name, description, price, stock in SAMPLE_PRODUCTS:
        category = categories.get(category_name)
        if category is None:
            category = Category(name=category_name)
            db.add(category)
            categories[category_name] = category

        if db.query(Product).filter(Product.name == name).first() is not None:
            logger.info(f"Product {name} already exists, skipping")
            continue

        db.add(Product(name=name, description=description, price=price, stock=stock, category=category))
        created += 1

    db.commit()
    logger.info(f"Seeded {created} products")
