import copy
from datetime import datetime, timezone

import pytest

from compliance_risk.core.policy import default_policy, policy_from_dict


FIXED_TS = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


SMALL_POLICY = {
    "policy_version": "test-1",
    "risk_levels": {"low": 80, "medium": 60, "high": 40},
    "entity_types": {
        "exchange": {
            "label": "Exchange",
            "categories": [
                {
                    "name": "Custody Arrangements",
                    "factors": [
                        {
                            "name": "Cold Storage Usage",
                            "kind": "linear",
                            "fact": "cold_storage_pct",
                            "floor_value": 0,
                            "ideal_value": 100,
                            "max_score": 10,
                            "remediation_threshold": 70,
                            "description": "{value:.0f}% of assets in cold storage",
                            "recommendation": "Move more assets to cold storage",
                        },
                        {
                            "name": "Fund Segregation",
                            "kind": "boolean",
                            "fact": "user_fund_segregation",
                            "max_score": 10,
                            "required": True,
                            "remediation_threshold": 70,
                            "description": "User funds segregated: {value}",
                            "recommendation": "Segregate user funds from operating funds",
                        },
                    ],
                },
                {
                    "name": "KYC/AML Controls",
                    "factors": [
                        {
                            "name": "KYC Verification Rate",
                            "kind": "linear",
                            "fact": "kyc_verification_rate",
                            "floor_value": 0,
                            "ideal_value": 100,
                            "max_score": 10,
                            "required": True,
                            "remediation_threshold": 70,
                            "description": "{value:.1f}% of users verified",
                            "recommendation": "Verify more users",
                        },
                        {
                            "name": "Sanctions Compliance",
                            "kind": "checklist",
                            "facts": ["sanctions_ofac_compliant", "sanctions_eu_compliant"],
                            "labels": {"sanctions_ofac_compliant": "OFAC", "sanctions_eu_compliant": "EU"},
                            "max_score": 10,
                            "remediation_threshold": 70,
                            "description": "{met}/{total} frameworks (missing: {missing})",
                            "absent_description": "Sanctions compliance not disclosed",
                            "recommendation": "Comply with OFAC and EU sanctions",
                        },
                    ],
                },
            ],
        }
    },
}


SCENARIO_FACTS = {
    "cold_storage_pct": 80,
    "user_fund_segregation": True,
    "kyc_verification_rate": 70,
    "sanctions_ofac_compliant": True,
    "sanctions_eu_compliant": False,
}


@pytest.fixture
def small_policy_raw():
    return copy.deepcopy(SMALL_POLICY)


@pytest.fixture
def small_policy(small_policy_raw):
    return policy_from_dict(small_policy_raw)


@pytest.fixture
def scenario_facts():
    return dict(SCENARIO_FACTS)


@pytest.fixture(scope="session")
def bundled_policy():
    return default_policy()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_TS
