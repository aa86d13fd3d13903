# FILE: edi-ingest/tests/conftest.py

import pytest
import sys
import os
import logging
from datetime import datetime
from typing import List

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from schema_registry import DocumentSchemaRegistry

# ==============================================================================
# PYTEST CONFIGURATION & HOOKS
# ==============================================================================

def pytest_configure(config):
    """Configure pytest settings and markers."""
    config.addinivalue_line("markers", "unit: Pure unit tests with no external dependencies.")
    config.addinivalue_line("markers", "integration: Tests that exercise files on disk or the command line.")

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

# ==============================================================================
# SHARED FIXTURES
# ==============================================================================

@pytest.fixture(scope="session")
def as_of() -> datetime:
    """Fixed processing time so date checks do not depend on the wall clock."""
    return datetime(2024, 7, 31, 12, 0)

@pytest.fixture(scope="session")
def registry() -> DocumentSchemaRegistry:
    """Registry holding the built-in 810 and 824 document schemas."""
    return DocumentSchemaRegistry()

@pytest.fixture(scope="session")
def valid_810_edi_string() -> str:
    """
    Provides a valid invoice (810) transmission, one segment per line.

    Contains:
    - 1 Interchange (ISA-IEA), control number 000000001
    - 1 Functional Group (GS-GE), control number 1
    - 1 Transaction Set (ST-SE), control number 0001, 9 segments including ST and SE
    """
    return """
ISA*00*          *00*          *ZZ*SENDERID       *ZZ*RECEIVERID     *240715*1200*^*00501*000000001*0*P*>~
GS*IN*SENDER*RECEIVER*20240715*1200*1*X*004010~
ST*810*0001~
BIG*20240715*INV1001*20240701*PO5501~
N1*BT*ACME RETAIL*92*1234~
N3*100 MAIN ST~
N4*SPRINGFIELD*IL*62701*US~
IT1*1*10*EA*12.50**VP*SKU-100~
TDS*12500~
CTT*1~
SE*9*0001~
GE*1*1~
IEA*1*000000001~
""".strip()

@pytest.fixture(scope="session")
def application_advice_824_edi_string() -> str:
    """
    Provides an application advice (824) transmission whose transaction set
    carries an IT1 segment, which the 824 document type does not allow.
    Everything else in the transmission is valid.
    """
    return """
ISA*00*          *00*          *ZZ*SENDERID       *ZZ*RECEIVERID     *240716*0930*^*00501*000000002*0*P*>~
GS*AG*SENDER*RECEIVER*20240716*0930*7*X*004010~
ST*824*0002~
BGN*00*REF123*20240716*0930~
N1*SE*SUPPLIER CO~
OTI*TA*IV*INV1001~
IT1*1*10*EA*12.50~
TED*024*BAD VALUE~
SE*7*0002~
GE*1*7~
IEA*1*000000002~
""".strip()

@pytest.fixture
def build_transmission():
    """
    Factory for synthetic invoice transmissions with ``groups`` functional
    groups of ``transactions_per_group`` transaction sets each, one segment
    per line. Every transaction set holds four segments (ST, BIG, TDS, SE).
    """
    def _build(groups: int, transactions_per_group: int, envelope_control: str = "000000001") -> List[str]:
        lines = [
            f"ISA*00*          *00*          *ZZ*SENDERID       *ZZ*RECEIVERID     "
            f"*240715*1200*^*00501*{envelope_control}*0*P*>~"
        ]
        for g in range(1, groups + 1):
            lines.append(f"GS*IN*SENDER*RECEIVER*20240715*1200*{g}*X*004010~")
            for t in range(1, transactions_per_group + 1):
                control = f"{g:02d}{t:02d}"
                lines.extend([
                    f"ST*810*{control}~",
                    f"BIG*20240715*INV{control}~",
                    "TDS*100~",
                    f"SE*4*{control}~",
                ])
            lines.append(f"GE*{transactions_per_group}*{g}~")
        lines.append(f"IEA*{groups}*{envelope_control}~")
        return lines
    return _build
