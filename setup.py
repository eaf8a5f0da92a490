"""Setup configuration for grocery-storefront project."""

from setuptools import setup, find_packages

setup(
    name="grocery-storefront",
    version="1.0.0",
    description="Grocery storefront order service with UPI payment verification, built on FastAPI and SQLAlchemy",
    author="Your Name",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.109.0",
        "uvicorn>=0.27.0",
        "sqlalchemy>=2.0.23",
        "alembic>=1.13.1",
        "psycopg2-binary>=2.9.9",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "httpx>=0.25",
        ],
    },
)
