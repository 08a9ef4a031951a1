import json

import pytest

from reporter.app.schemas.report import Identity, ReportPermissions
from reporter.app.storage.report_repository import (
    STORAGE_VERSION,
    ReportRepository,
    migrate_payload,
)
from reporter.tests.fixtures.factories import make_report

pytestmark = pytest.mark.anyio


async def test_creator_sees_report_with_empty_permissions():
    repository = ReportRepository()
    await repository.add(make_report("r1"))

    assert [r.id for r in repository.list_for(Identity(user_id="creator"))] == ["r1"]
    assert repository.list_for(Identity(user_id="someone")) == []


async def test_visibility_by_user_role_or_subnet():
    repository = ReportRepository()
    await repository.add(make_report("by-user", permissions=ReportPermissions(users=["u2"])))
    await repository.add(make_report("by-role", permissions=ReportPermissions(roles=["admin"])))
    await repository.add(make_report("by-subnet", permissions=ReportPermissions(subnets=["lima"])))

    identity = Identity(user_id="u2", role="admin", subnet="cusco")

    assert [r.id for r in repository.list_for(identity)] == ["by-user", "by-role"]
    assert [r.id for r in repository.list_for(Identity(user_id="x", subnet="lima"))] == [
        "by-subnet"
    ]


async def test_search_is_case_insensitive_over_title_and_description():
    repository = ReportRepository()
    await repository.add(make_report("r1", title="Informe General", description="trimestre"))
    await repository.add(make_report("r2", title="Otro", description="Resumen ANUAL"))
    creator = Identity(user_id="creator")

    assert [r.id for r in repository.list_for(creator, "general")] == ["r1"]
    assert [r.id for r in repository.list_for(creator, "anual")] == ["r2"]
    assert len(repository.list_for(creator, "")) == 2


async def test_duplicate_add_and_missing_update_are_rejected():
    repository = ReportRepository()
    await repository.add(make_report("r1"))

    with pytest.raises(ValueError):
        await repository.add(make_report("r1"))
    with pytest.raises(KeyError):
        await repository.update(make_report("missing"))


async def test_update_and_delete():
    repository = ReportRepository()
    await repository.add(make_report("r1"))

    await repository.update(make_report("r1", title="Renombrado"))
    assert repository.get("r1").title == "Renombrado"

    removed = await repository.delete("r1")
    assert removed.id == "r1"
    assert await repository.delete("r1") is None
    assert len(repository) == 0


async def test_records_survive_reopen(tmp_path):
    path = tmp_path / "reports.json"
    repository = await ReportRepository.open(path)
    await repository.add(make_report("r1", permissions=ReportPermissions(roles=["admin"])))

    reopened = await ReportRepository.open(path)

    assert reopened.get("r1") == repository.get("r1")
    stored = json.loads(path.read_text(encoding="utf-8"))
    assert stored["version"] == STORAGE_VERSION


async def test_version_zero_records_gain_empty_permissions(tmp_path):
    legacy = make_report("old").model_dump(mode="json")
    del legacy["permissions"]
    path = tmp_path / "reports.json"
    path.write_text(json.dumps([legacy]), encoding="utf-8")

    repository = await ReportRepository.open(path)

    report = repository.get("old")
    assert report.permissions == ReportPermissions()
    assert repository.list_for(Identity(user_id="creator")) == [report]


def test_migration_keeps_current_version_untouched():
    records = [{"id": "x", "permissions": {"users": ["a"], "roles": [], "subnets": []}}]

    assert migrate_payload({"version": 1, "reports": records}) == records


async def test_supersede_replaces_only_auto_generated_report_of_same_response():
    repository = ReportRepository()
    await repository.add(make_report("auto-old", auto_generated=True))
    await repository.add(make_report("manual", auto_generated=False))
    await repository.add(make_report("other", auto_generated=True, response_id="resp-2"))

    superseded = await repository.supersede(make_report("auto-new", auto_generated=True))

    assert [r.id for r in superseded] == ["auto-old"]
    assert sorted(r.id for r in repository.list_all()) == ["auto-new", "manual", "other"]
