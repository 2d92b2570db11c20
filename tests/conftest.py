import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _plan(rep_id, name, gsv, dist, tl, channel, sm, rsm, region, due, overdue, total, eco=0):
    return {
        "SALESMANNO": rep_id,
        "SALESMANNAMEA": name,
        "Plan GSV": gsv,
        "Plan ECO": eco,
        "Plan PC": 10,
        "Plan LPC": 5,
        "Plan MVS": 2,
        "Dist Name": dist,
        "T.L Name": tl,
        "Channel": channel,
        "SM": sm,
        "RSM": rsm,
        "Region": region,
        "Due": due,
        "Overdue": overdue,
        "Total Debt": total,
    }


def _ach(rep_id, day, gsv, eco=0):
    return {"SALESMANNO": rep_id, "SALESMANNAMEA": f"rep {rep_id}", "Ach GSV": gsv, "Ach ECO": eco, "Ach PC": 1, "Ach LPC": 1, "Ach MVS": 1, "Days": day}


@pytest.fixture
def raw_plans():
    return [
        _plan(101, "Ahmed Ali Hassan", 1000, "Alpha Dist", "Tarek Saad Omar", "Retail", "Sami", "Rami", "North", 300, 100, 400, eco=100),
        _plan(102, "Mona Adel", 500, "Alpha Dist", "Tarek Saad Omar", "Wholesale", "Sami", "Rami", "North", 100, 0, 100),
        _plan(201, "Karim Nabil", 2000, "Beta Dist", "Hany Fouad", "Retail", "Sherif", "Rami", "South", 0, 600, 600),
        _plan(301, "Omar Zaki", 800, "Gamma Dist", "Lina Samir", "", "Sherif", "Rami", "South", 0, 0, 0),
        # duplicate rep id, dropped at ingestion
        _plan(101, "Ahmed Ali Hassan", 9999, "Alpha Dist", "Tarek Saad Omar", "Retail", "Sami", "Rami", "North", 0, 0, 0),
    ]


@pytest.fixture
def raw_achievements():
    return [
        _ach(101, "2024-06-08", 300),
        _ach(201, "2024-06-08", 100),
        _ach(101, "2024-06-09T00:00:00.000Z", 400, eco=40),
        _ach(102, "2024-06-09", 250),
        _ach(201, "2024-06-09", 500),
        _ach(101, "2024-06-09", 999),
        _ach(999, "2024-06-09", 50),
        _ach(102, "not-a-date", 10),
        _ach("", "2024-06-09", 10),
    ]


@pytest.fixture
def snapshot(raw_plans, raw_achievements):
    return {"plans": raw_plans, "achievements": raw_achievements}


@pytest.fixture
def data_ctx(snapshot):
    from evpm.data import ingest_snapshot

    return ingest_snapshot(snapshot)


@pytest.fixture
def plans(data_ctx):
    return data_ctx["plans"]


@pytest.fixture
def achievements(data_ctx):
    return data_ctx["achievements"]


@pytest.fixture
def state_dir(tmp_path, monkeypatch):
    from evpm.config import get_settings

    monkeypatch.setenv("EVPM_STATE_DIR", str(tmp_path))
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()
