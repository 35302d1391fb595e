"""
Pytest configuration and shared fixtures for the receiving test suite.
"""
import os
import shutil
import tempfile
from decimal import Decimal
from pathlib import Path
from typing import Generator

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
os.chdir(PROJECT_ROOT)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for test files."""
    tmp_path = tempfile.mkdtemp(prefix="receiving_test_")
    yield Path(tmp_path)
    shutil.rmtree(tmp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> "Config":
    """Provide a test configuration with isolated directories and the local store."""
    from config import Config

    config = Config()
    config.api_base_url = None
    config.api_token = None
    config.require_brand = False
    config.default_location = "WAREHOUSE-A"
    (temp_dir / "output").mkdir(parents=True, exist_ok=True)
    config.db_path = temp_dir / "output" / "receiving.db"
    config.po_csv = temp_dir / "data" / "purchase_orders.csv"
    config.po_lines_csv = temp_dir / "data" / "purchase_order_lines.csv"
    config.po_csv.parent.mkdir(parents=True, exist_ok=True)
    return config


@pytest.fixture
def sample_po_csv(temp_dir: Path) -> Path:
    """Create a sample purchase orders CSV file."""
    csv_path = temp_dir / "purchase_orders.csv"
    content = """id,po_number,supplier_id,supplier_name,po_date,expected_delivery_date,status,notes
1,PO-2024-001,7,Roadmax Tyres Ltd,2024-01-15,2024-02-15,ORDERED,Standard order
2,PO-2024-002,8,Fleet Rubber Co,2024-01-20,,APPROVED,
3,PO-2024-003,7,Roadmax Tyres Ltd,2024-02-01,,CANCELLED,Supplier out of stock"""
    csv_path.write_text(content)
    return csv_path


@pytest.fixture
def sample_po_lines_csv(temp_dir: Path) -> Path:
    """Create a sample PO lines CSV file."""
    csv_path = temp_dir / "purchase_order_lines.csv"
    content = """po_number,id,size,brand,model,type,quantity,received_quantity,unit_price,notes
PO-2024-001,11,295/80R22.5,Michelin,X Multi D,NEW,10,4,"32,500.00",
PO-2024-001,12,315/80R22.5,Bridgestone,M729,NEW,6,0,41000,
PO-2024-002,21,11R22.5,,,RETREAD,2,0,9500.50,Retreads
PO-2024-003,31,295/80R22.5,Michelin,X Multi Z,NEW,4,0,33000,"""
    csv_path.write_text(content)
    return csv_path


@pytest.fixture
def sample_order():
    """PO with one partly received line (10 ordered, 4 received) and one fresh line."""
    from models.purchase_order import PurchaseOrder, PurchaseOrderLine

    return PurchaseOrder(
        id=1,
        po_number="PO-2024-001",
        supplier_name="Roadmax Tyres Ltd",
        status="ORDERED",
        lines=[
            PurchaseOrderLine(
                id=11, size="295/80R22.5", brand="Michelin", model="X Multi D",
                ordered_quantity=10, previously_received_quantity=4,
                unit_price=Decimal("32500.00"),
            ),
            PurchaseOrderLine(
                id=12, size="315/80R22.5", brand="Bridgestone", model="M729",
                ordered_quantity=6, previously_received_quantity=0,
                unit_price=Decimal("41000"),
            ),
        ],
    )


@pytest.fixture
def small_order():
    """Two fresh lines of 3 and 2 units (5 ordered, nothing received)."""
    from models.purchase_order import PurchaseOrder, PurchaseOrderLine

    return PurchaseOrder(
        id=2,
        po_number="PO-2024-002",
        status="ORDERED",
        lines=[
            PurchaseOrderLine(id=21, size="11R22.5", brand="Goodyear",
                              ordered_quantity=3, unit_price=Decimal("100")),
            PurchaseOrderLine(id=22, size="12R22.5", brand="Dunlop",
                              ordered_quantity=2, unit_price=Decimal("150")),
        ],
    )


@pytest.fixture
def make_drafts():
    """Build fresh receiving drafts for every line of an order."""
    from models.receiving import ReceivingLineDraft, default_batch_number

    def _make(order):
        return [
            ReceivingLineDraft(
                line=line,
                batch_number=default_batch_number(order.po_number, line.id),
                brand=line.brand,
            )
            for line in order.lines
        ]
    return _make


@pytest.fixture
def fixed_clock():
    """Clock returning a constant epoch-millisecond value."""
    return lambda: 1_700_000_123_456


@pytest.fixture
def test_db(test_config) -> "Database":
    """Provide a test database instance."""
    from receiving.database import Database
    return Database(test_config.db_path)


@pytest.fixture
def loaded_db(test_db, sample_order, small_order):
    """Database with the sample and small orders stored."""
    test_db.upsert_purchase_order(sample_order)
    test_db.upsert_purchase_order(small_order)
    return test_db


# Configure pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
