"""Per-role and per-principal projections."""

from core.aggregator import (
    PivotRow,
    PrincipalSummary,
    fncMatrixRows,
    fncRoleColumns,
    fncSummarisePrincipals,
    fncSummariseRoles,
)
from core.models import Group, ServicePrincipal, User
from core.role_report import fncCollectRoleData
from fakes import FakeCollector, direct, eligible, role


def _by_name(summaries):
    return {s.name: s for s in summaries}


def _by_id(rows):
    return {r.principalId: r for r in rows}


def _overlap_collector() -> FakeCollector:
    """u1 is direct, eligible and in both Admins groups for the same role."""
    return FakeCollector(
        users=[User(id="u1", displayName="Ann"), User(id="u2", displayName="Bob"), User(id="u3", displayName="Cy")],
        groups=[Group(id="g1", displayName="Admins"), Group(id="g2", displayName="Tier0 Admins")],
        service_principals=[ServicePrincipal(id="sp1", displayName="Deployer")],
        roles=[role("r1", "Global Administrator"), role("r2", "Reports Reader")],
        direct=[direct("r1", "u1"), direct("r1", "g1"), direct("r1", "sp1")],
        eligible=[eligible("r1", "u1"), eligible("r1", "g2")],
        members={"g1": ["u1", "u2"], "g2": ["u1", "u2"]},
    )


class TestRoleSummaries:
    def test_scenario_counts_groups_as_holders(self, scenario_collector) -> None:
        [summary] = fncSummariseRoles(fncCollectRoleData(scenario_collector))
        assert summary.name == "Global Administrator"
        assert summary.directMembers == 2
        assert summary.eligibleMembers == 0
        assert summary.groupDerivedMembers == 1
        assert summary.totalMembers == 3
        assert summary.usersCount == 2
        assert summary.groupsCount == 1
        assert summary.servicePrincipalsCount == 0

    def test_no_double_counting_across_sources(self) -> None:
        resolved = fncCollectRoleData(_overlap_collector())
        ga = _by_name(fncSummariseRoles(resolved))["Global Administrator"]
        # holders: u1, g1, sp1 (direct); u1, g2 (eligible); u2 only via groups
        assert ga.directMembers == 3
        assert ga.eligibleMembers == 2
        assert ga.groupDerivedMembers == 1
        assert ga.totalMembers == 5
        assert ga.usersCount + ga.groupsCount + ga.servicePrincipalsCount == ga.totalMembers
        assert (ga.usersCount, ga.groupsCount, ga.servicePrincipalsCount) == (2, 2, 1)

    def test_only_with_members_hides_empty_roles(self) -> None:
        resolved = fncCollectRoleData(_overlap_collector())
        assert set(_by_name(fncSummariseRoles(resolved))) == {"Global Administrator", "Reports Reader"}
        assert set(_by_name(fncSummariseRoles(resolved, only_with_members=True))) == {"Global Administrator"}

    def test_fallback_role_appears_with_counts(self) -> None:
        c = FakeCollector(
            users=[User(id="u1")],
            roles=[role("r1", "Global Administrator")],
            eligible=[eligible("r9", "u1")],
            point_roles=[role("r9", "Attribute Assignment Administrator", isBuiltIn=True)],
        )
        summaries = _by_name(fncSummariseRoles(fncCollectRoleData(c), only_with_members=True))
        late = summaries["Attribute Assignment Administrator"]
        assert (late.eligibleMembers, late.totalMembers, late.usersCount) == (1, 1, 1)
        assert c.role_lookups == {"r9": 1}

    def test_reprojection_is_idempotent(self) -> None:
        resolved = fncCollectRoleData(_overlap_collector())
        assert fncSummariseRoles(resolved) == fncSummariseRoles(resolved)
        first = fncSummarisePrincipals(resolved, matrix=True)
        second = fncSummarisePrincipals(resolved, matrix=True)
        assert first == second
        assert fncSummarisePrincipals(resolved) == fncSummarisePrincipals(resolved)

    def test_empty_tenant_gives_empty_lists(self) -> None:
        c = FakeCollector(users=[User(id="u1")], roles=[role("r1")])
        resolved = fncCollectRoleData(c)
        assert fncSummariseRoles(resolved) == []
        assert fncSummarisePrincipals(resolved) == []
        assert fncSummarisePrincipals(resolved, matrix=True) == []


class TestPrincipalSummaries:
    def test_flat_rows_carry_role_lists(self) -> None:
        rows = _by_id(fncSummarisePrincipals(fncCollectRoleData(_overlap_collector())))
        ann = rows["u1"]
        assert isinstance(ann, PrincipalSummary)
        assert (ann.directCount, ann.eligibleCount, ann.groupDerivedCount) == (1, 1, 1)
        assert ann.directRoles == "Global Administrator"
        assert ann.eligibleRoles == "Global Administrator"
        assert ann.groupDerivedRoles == (
            "Global Administrator (via Admins), Global Administrator (via Tier0 Admins, Eligible)"
        )
        assert rows["u3"].directCount == 0 and rows["u3"].groupDerivedRoles == ""

    def test_only_with_roles_keeps_group_derived_only(self) -> None:
        resolved = fncCollectRoleData(_overlap_collector())
        ids = {r.principalId for r in fncSummarisePrincipals(resolved, only_with_roles=True)}
        assert "u2" in ids
        assert "u3" not in ids
        assert ids == {"u1", "u2", "g1", "g2", "sp1"}

    def test_matrix_cell_keeps_direct_and_group_sources(self) -> None:
        resolved = fncCollectRoleData(_overlap_collector())
        rows = _by_id(fncSummarisePrincipals(resolved, matrix=True))
        ann = rows["u1"]
        assert isinstance(ann, PivotRow)
        assert ann.labels("Global Administrator") == ["Direct", "Eligible", "Admins", "Tier0 Admins (Eligible)"]
        assert rows["u2"].labels("Global Administrator") == ["Admins", "Tier0 Admins (Eligible)"]
        assert rows["u3"].labels("Global Administrator") == []

    def test_matrix_columns_and_materialised_rows(self) -> None:
        resolved = fncCollectRoleData(_overlap_collector())
        columns = fncRoleColumns(resolved)
        assert columns == ["Global Administrator"]

        rows = fncMatrixRows(fncSummarisePrincipals(resolved, only_with_roles=True, matrix=True), columns)
        by_id = {r["principalId"]: r for r in rows}
        assert by_id["u1"]["Global Administrator"] == "Direct; Eligible; Admins; Tier0 Admins (Eligible)"
        assert by_id["sp1"]["Global Administrator"] == "Direct"
        assert by_id["sp1"]["principalType"] == "ServicePrincipal"
        assert all(set(r) >= {"displayName", "principalType", "Global Administrator"} for r in rows)

    def test_rows_sorted_by_display_name(self) -> None:
        rows = fncSummarisePrincipals(fncCollectRoleData(_overlap_collector()))
        names = [r.displayName for r in rows]
        assert names == sorted(names, key=str.lower)

    def test_same_named_roles_are_counted_separately(self) -> None:
        c = FakeCollector(
            users=[User(id="u1", displayName="Ann")],
            groups=[Group(id="g1", displayName="Approvers")],
            roles=[role("r1", "Approver", isBuiltIn=True), role("r2", "Approver", isBuiltIn=False)],
            direct=[direct("r1", "u1"), direct("r2", "u1"), direct("r1", "g1"), direct("r2", "g1")],
            eligible=[eligible("r1", "u1"), eligible("r2", "u1")],
            members={"g1": ["u1"]},
        )
        ann = _by_id(fncSummarisePrincipals(fncCollectRoleData(c)))["u1"]
        assert (ann.directCount, ann.eligibleCount, ann.groupDerivedCount) == (2, 2, 2)
        assert ann.directRoles == "Approver, Approver"
