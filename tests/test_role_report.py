"""Bulk fetch orchestration and the exposed summary operations."""

import pytest

from core.errors import FatalFetchError
from core.role_report import fncCollectRoleData, fncGetPrincipalSummaries, fncGetRoleSummaries


class TestCollectRoleData:
    def test_every_collection_is_attempted_before_failing(self, scenario_collector) -> None:
        scenario_collector.failing = {"groups", "eligibilitySchedules"}
        with pytest.raises(FatalFetchError) as exc:
            fncCollectRoleData(scenario_collector)

        assert exc.value.collections == ["groups", "eligibilitySchedules"]
        assert "groups unavailable" in str(exc.value)
        assert isinstance(exc.value.__cause__, RuntimeError)
        for name in ("users", "groups", "servicePrincipals", "roleDefinitions", "roleAssignments", "eligibilitySchedules"):
            assert scenario_collector.calls[name] == 1

    def test_fatal_error_skips_resolution(self, scenario_collector) -> None:
        scenario_collector.failing = {"roleDefinitions"}
        with pytest.raises(FatalFetchError):
            fncCollectRoleData(scenario_collector)
        assert not scenario_collector.group_member_calls

    def test_role_assignable_filter_is_forwarded(self, scenario_collector) -> None:
        fncCollectRoleData(scenario_collector, role_assignable_groups_only=True)
        assert scenario_collector.groups_filter is True

    def test_group_expansion_can_be_disabled(self, scenario_collector) -> None:
        resolved = fncCollectRoleData(scenario_collector, expand_groups=False)
        assert "u2" not in resolved.principal_roles
        assert resolved.group_fetch_count == 0


class TestExposedOperations:
    def test_role_summaries(self, scenario_collector) -> None:
        [summary] = fncGetRoleSummaries(scenario_collector, only_with_members=True)
        assert summary.totalMembers == 3

    def test_principal_summaries_matrix(self, scenario_collector) -> None:
        rows = fncGetPrincipalSummaries(scenario_collector, only_with_roles=True, matrix=True)
        cells = {r.principalId: r.labels("Global Administrator") for r in rows}
        assert cells == {"u1": ["Direct"], "u2": ["Admins"], "g1": ["Direct"]}
