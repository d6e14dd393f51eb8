import pytest
import sys
import os
import logging
from pathlib import Path

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from cdm import Dialect
from schema_manager import InMemorySchemaSource, SchemaManager

# ==============================================================================
# PYTEST CONFIGURATION & HOOKS
# ==============================================================================

def pytest_configure(config):
    """Configure pytest settings and markers."""
    config.addinivalue_line("markers", "unit: Pure unit tests with no external dependencies.")
    config.addinivalue_line("markers", "integration: Tests reading schema fixtures from disk or driving several components.")

@pytest.fixture(scope="session", autouse=True)
def setup_test_environment(pytestconfig):
    """Set up test environment with logging configuration."""
    # Use pytest's log_cli_level if available, otherwise default to INFO
    log_level = pytestconfig.getoption("log_cli_level") or "INFO"
    logging.basicConfig(
        level=log_level.upper(),
        format="[%(asctime)s] [%(levelname)s] [%(name)s:%(lineno)d] - %(message)s",
        stream=sys.stdout,
        force=True,
    )
    logging.info(f"Test logging configured with level: {log_level.upper()}")
    yield

# ==============================================================================
# SCHEMA FIXTURES
# ==============================================================================

SCHEMA_FIXTURES = Path(__file__).parent / "fixtures" / "schemas"

@pytest.fixture(scope="session")
def schema_dir() -> Path:
    """On-disk schema tree: x12/004010 and edifact/d96a."""
    return SCHEMA_FIXTURES

@pytest.fixture
def schema_manager(schema_dir: Path) -> SchemaManager:
    return SchemaManager(schema_base_path=str(schema_dir))

def _in_memory_manager(x12: dict = None, edifact: dict = None) -> SchemaManager:
    """A schema manager over in-memory tables: {version: {table: {code: definition}}}."""
    tables = {}
    if x12 is not None:
        tables[Dialect.X12] = x12
    if edifact is not None:
        tables[Dialect.EDIFACT] = edifact
    return SchemaManager(source=InMemorySchemaSource(tables))

@pytest.fixture
def st_schema_manager() -> SchemaManager:
    """Only an ST segment whose first element carries a code list."""
    return _in_memory_manager(x12={
        "004010": {
            "segments": {
                "ST": {"name": "Transaction Set Header", "elements": [
                    {"position": "01", "name": "Transaction Set Identifier Code", "requirement": "M", "type": "143"},
                    {"position": "02", "name": "Transaction Set Control Number", "requirement": "M", "type": "329"},
                ]},
            },
            "elements": {
                "143": {"name": "Transaction Set Identifier Code", "dataType": "ID", "minLength": 3, "maxLength": 3,
                        "codes": [{"code": "810", "description": "Invoice"}, {"code": "850", "description": "Purchase Order"}]},
                "329": {"name": "Transaction Set Control Number", "dataType": "AN", "minLength": 4, "maxLength": 9},
            },
        },
    })

# ==============================================================================
# TEST DOCUMENTS
# ==============================================================================

# Fixed-width ISA: element '*', component '>' (offset 104), segment '~' (offset 105), version 00401.
ISA_LINE = "ISA*00*          *00*          *ZZ*SENDERID       *ZZ*RECEIVERID     *240715*1200*U*00401*000000001*0*P*>~"

@pytest.fixture(scope="session")
def isa_line() -> str:
    return ISA_LINE

@pytest.fixture(scope="session")
def valid_850_edi_string() -> str:
    """A compliant X12 004010 purchase order, one segment per line."""
    return f"""
{ISA_LINE}
GS*PO*SENDERID*RECEIVERID*20240715*1200*1*X*004010~
ST*850*0001~
BEG*00*SA*PO-12345**20240715~
DTM*002*20240801~
PO1*1*10*EA*9.95~
CTT*1~
SE*6*0001~
GE*1*1~
IEA*1*000000001~
""".strip()

@pytest.fixture(scope="session")
def invalid_850_edi_string(valid_850_edi_string: str) -> str:
    """
    The purchase order with three element errors:
    - BEG01 '03' is not a purpose code
    - DTM02 '20230229' is not a calendar date
    - PO1 04 '9.9.5' is not a decimal number
    """
    return (valid_850_edi_string
            .replace("BEG*00*", "BEG*03*")
            .replace("DTM*002*20240801~", "DTM*002*20230229~")
            .replace("*EA*9.95~", "*EA*9.9.5~"))

@pytest.fixture(scope="session")
def valid_orders_edifact_string() -> str:
    """A compliant EDIFACT D96A ORDERS message with a UNA header."""
    return """
UNA:+.? '
UNB+UNOA:2+SENDER:14+RECEIVER:14+240715:1200+REF0001'
UNH+1+ORDERS:D:96A:UN'
BGM+220+PO12345+9'
DTM+137:20240715:102'
NAD+BY+5412345000013::9'
FTX+AAI+++Price ?+ tax included'
QTY+21:48:PCE'
UNT+8+1'
UNZ+1+REF0001'
""".strip()
