"""Shared fixtures for the role resolution tests."""

import pytest

from core.models import Group, User
from fakes import FakeCollector, direct, role


@pytest.fixture
def scenario_collector():
    """Global Administrator held by u1 and group g1 (members: u2)."""
    return FakeCollector(
        users=[User(id="u1", displayName="Ann"), User(id="u2", displayName="Bob")],
        groups=[Group(id="g1", displayName="Admins", isAssignableToRole=True)],
        roles=[role("r1", "Global Administrator", isBuiltIn=True, isEnabled=True)],
        direct=[direct("r1", "u1"), direct("r1", "g1")],
        members={"g1": ["u2"]},
    )


@pytest.fixture
def graph_routes():
    """Raw Graph payloads keyed by endpoint path, for FakeGraphClient."""
    return {
        "users": [
            {"id": "u1", "displayName": "Ann", "accountEnabled": True, "userPrincipalName": "ann@contoso.com",
             "onPremisesSyncEnabled": True, "onPremisesDistinguishedName": "CN=Ann,OU=Admins,OU=IT,DC=contoso,DC=com"},
            {"id": "u2", "displayName": "Bob", "accountEnabled": True, "userPrincipalName": "bob@contoso.com"},
        ],
        "groups": [{"id": "g1", "displayName": "Admins", "securityEnabled": True, "isAssignableToRole": True}],
        "servicePrincipals": [{"id": "sp1", "displayName": "Deployer", "appId": "app-1", "servicePrincipalType": "Application"}],
        "roleManagement/directory/roleDefinitions": [
            {"id": "r1", "displayName": "Global Administrator", "isBuiltIn": True, "isEnabled": True,
             "rolePermissions": [{"allowedResourceActions": ["a", "b", "c"]}]},
            {"id": "r2", "displayName": "Helpdesk Administrator", "isBuiltIn": True, "isEnabled": True},
        ],
        "roleManagement/directory/roleAssignments": [
            {"id": "a1", "roleDefinitionId": "r1", "principalId": "u1"},
            {"id": "a2", "roleDefinitionId": "r1", "principalId": "g1"},
        ],
        "roleManagement/directory/roleEligibilitySchedules": [
            {"id": "e1", "roleDefinitionId": "r2", "principalId": "sp1"},
        ],
        "groups/g1/members": [{"id": "u2", "displayName": "Bob"}],
    }
