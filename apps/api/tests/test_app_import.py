from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import pytest


API_ROOT = Path(__file__).resolve().parents[1]


@pytest.mark.parametrize(
    "statement",
    [
        "import app.main",
        "import app.models; import app.main",
        "import app.business.billing; import app.main",
    ],
)
def test_application_imports_in_fresh_interpreter(statement: str) -> None:
    env = {
        **os.environ,
        "PYTHONPATH": str(API_ROOT),
        "DATABASE_URL": "sqlite+pysqlite:///:memory:",
    }

    result = subprocess.run(
        [sys.executable, "-c", statement],
        cwd=API_ROOT,
        env=env,
        capture_output=True,
        text=True,
        timeout=120,
    )

    assert result.returncode == 0, result.stderr


def test_models_share_the_core_clock() -> None:
    from app.accounts import models as accounts_models
    from app.business.billing import models as billing_models
    from app.core.clock import utcnow
    from app.crm import models as crm_models
    from app.models import audit as audit_models
    from app.operations import models as operations_models

    for module in (accounts_models, billing_models, crm_models, audit_models, operations_models):
        assert module.utcnow is utcnow
