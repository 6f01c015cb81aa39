from __future__ import annotations

import re
from datetime import date
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class Disclosure(BaseModel):
    """Registrant-submitted data; accepts the portal's camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _clean_names(v: List[str]) -> List[str]:
    out: List[str] = []
    for item in v:
        text = (item or "").strip()
        if text and text.lower() not in {o.lower() for o in out}:
            out.append(text)
    return out


# Exchange


class WashTradingDetection(Disclosure):
    automated_bot_detection: bool
    time_stamp_granularity: Literal["milliseconds", "seconds"]
    spoofing_detection: bool


class SecurityMeasures(Disclosure):
    two_factor_auth: Optional[bool] = None
    multi_sig_required: Optional[bool] = None


class RiskManagement(Disclosure):
    market_surveillance: Optional[bool] = None
    automated_controls: Optional[bool] = None


class KycVerificationMetrics(Disclosure):
    verified_users: int = Field(..., ge=0)
    non_verified_users: int = Field(..., ge=0)
    high_risk_jurisdiction_percentage: float = Field(..., ge=0, le=100)


class SanctionsCompliance(Disclosure):
    ofac_compliant: bool
    fatf_compliant: bool
    eu_compliant: bool


class CustodyArrangements(Disclosure):
    cold_storage_percentage: float = Field(..., ge=0, le=100)
    hot_wallet_percentage: float = Field(..., ge=0, le=100)
    user_fund_segregation: bool

    @model_validator(mode="after")
    def validate_allocation(self) -> "CustodyArrangements":
        if self.cold_storage_percentage + self.hot_wallet_percentage > 100.0 + 1e-9:
            raise ValueError("Cold and hot wallet allocations exceed 100%.")
        return self


class BlockchainAnalytics(Disclosure):
    real_time_analytics: bool = False
    proof_of_reserves: bool = False
    monitoring_tools: List[str] = Field(default_factory=list)

    @field_validator("monitoring_tools")
    @classmethod
    def validate_tools(cls, v: List[str]) -> List[str]:
        return _clean_names(v)


class ExchangeDisclosure(Disclosure):
    exchange_name: Optional[str] = None
    headquarters_location: Optional[str] = None
    exchange_type: Optional[Literal["CEX", "DEX"]] = None
    regulatory_licenses: Optional[str] = None

    wash_trading_detection: Optional[WashTradingDetection] = None
    security_measures: Optional[SecurityMeasures] = None
    risk_management: Optional[RiskManagement] = None
    kyc_verification_metrics: Optional[KycVerificationMetrics] = None
    sanctions_compliance: Optional[SanctionsCompliance] = None
    custody_arrangements: Optional[CustodyArrangements] = None
    blockchain_analytics: Optional[BlockchainAnalytics] = None


# Stablecoin


class ReserveDisclosure(Disclosure):
    coverage_percentage: float = Field(..., ge=0)
    attestation_frequency: Literal["monthly", "quarterly", "annual", "none"] = "none"
    segregated: Optional[bool] = None


class IssuanceControls(Disclosure):
    kyc_on_mint_redeem: Optional[bool] = None
    freeze_capability: Optional[bool] = None
    mint_multisig: Optional[bool] = None


class StablecoinDisclosure(Disclosure):
    stablecoin_name: Optional[str] = None
    token_symbol: Optional[str] = None
    backing_asset_type: Optional[str] = None
    pegged_to: Optional[str] = None
    jurisdiction: Optional[str] = None
    regulatory_licenses: List[str] = Field(default_factory=list)

    reserves: Optional[ReserveDisclosure] = None
    redemption_rights: Optional[bool] = None
    issuance_controls: Optional[IssuanceControls] = None

    @field_validator("regulatory_licenses")
    @classmethod
    def validate_licenses(cls, v: List[str]) -> List[str]:
        return _clean_names(v)


# Fund


class FundCustody(Disclosure):
    cold_storage: float = Field(..., ge=0, le=100)
    custodian_name: Optional[str] = None
    insurance_details: Optional[str] = None
    jurisdiction_of_custody: Optional[str] = None


class AmlProcedures(Disclosure):
    kyc_provider: Optional[str] = None
    ongoing_monitoring: Optional[bool] = None
    travel_rule: Optional[bool] = None


class ServicingProviders(Disclosure):
    administrator: Optional[str] = None
    auditor: Optional[str] = None
    legal_counsel: Optional[str] = None
    tax_advisor: Optional[str] = None


class ValuationMethods(Disclosure):
    frequency: Optional[str] = None
    methodology: Optional[str] = None
    third_party_valuation: Optional[bool] = None


class FundLicenses(Disclosure):
    licenses: List[str] = Field(default_factory=list)

    @field_validator("licenses")
    @classmethod
    def validate_licenses(cls, v: List[str]) -> List[str]:
        return _clean_names(v)


class FundDisclosure(Disclosure):
    fund_name: Optional[str] = None
    jurisdiction: Optional[str] = None
    custody_arrangements: Optional[FundCustody] = None
    aml_procedures: Optional[AmlProcedures] = None
    servicing_providers: Optional[ServicingProviders] = None
    valuation_methods: Optional[ValuationMethods] = None
    regulatory_licenses: Optional[FundLicenses] = None


# DeFi


class SecurityPractices(Disclosure):
    audit_firms: List[str] = Field(default_factory=list)
    bug_bounty: Optional[bool] = None
    upgrade_timelock: Optional[bool] = None

    @field_validator("audit_firms")
    @classmethod
    def validate_audit_firms(cls, v: List[str]) -> List[str]:
        return _clean_names(v)


class AdminControls(Disclosure):
    multisig: Optional[bool] = None
    emergency_pause: Optional[bool] = None


class GovernanceDistribution(Disclosure):
    top_holder_voting_percentage: float = Field(..., ge=0, le=100)


class OracleDesign(Disclosure):
    redundant_oracles: Optional[bool] = None
    twap_pricing: Optional[bool] = None


class DefiDisclosure(Disclosure):
    protocol_name: Optional[str] = None
    protocol_type: Optional[str] = None
    blockchain_networks: List[str] = Field(default_factory=list)

    security: Optional[SecurityPractices] = None
    admin_controls: Optional[AdminControls] = None
    governance: Optional[GovernanceDistribution] = None
    oracles: Optional[OracleDesign] = None
    frontend_sanctions_screening: Optional[bool] = None


# Token

_EVM_ADDRESS = re.compile(r"^0x[a-fA-F0-9]{40}$")


class ContractAddress(Disclosure):
    network: str
    address: str

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not _EVM_ADDRESS.match(v.strip()):
            raise ValueError("Invalid contract address format.")
        return v.strip()


class OfferingJurisdiction(Disclosure):
    id: Optional[int] = None
    name: str


class ComplianceContact(Disclosure):
    name: str
    email: str
    role: Optional[str] = None


class TokenDisclosure(Disclosure):
    token_name: Optional[str] = None
    token_symbol: Optional[str] = Field(default=None, max_length=10)
    token_category: Optional[str] = None
    issuer_name: Optional[str] = None
    issuer_legal_entity: Optional[str] = None
    whitepaper_url: Optional[str] = None
    contract_addresses: List[ContractAddress] = Field(default_factory=list)
    regulatory_status: Optional[str] = None
    jurisdictions: List[OfferingJurisdiction] = Field(default_factory=list)
    compliance_contacts: List[ComplianceContact] = Field(default_factory=list)
    kyc_requirements: Optional[str] = None
    aml_policy_url: Optional[str] = None
    transfer_restrictions: Optional[str] = None
    whitelist_status: Optional[bool] = None
    security_audit_details: Any = None
    last_audit_date: Optional[date] = None


# NFT marketplace


class NftSmartContracts(Disclosure):
    audited: Optional[bool] = None
    audit_firms: List[str] = Field(default_factory=list)

    @field_validator("audit_firms")
    @classmethod
    def validate_audit_firms(cls, v: List[str]) -> List[str]:
        return _clean_names(v)


class ListingPolicies(Disclosure):
    creator_verification: Optional[bool] = None
    prohibited_content_policy: Optional[bool] = None


class ModerationProcedures(Disclosure):
    takedown_process: Optional[bool] = None
    wash_trading_monitoring: Optional[bool] = None


class CopyrightPolicies(Disclosure):
    claims_process: Optional[bool] = None


class NftAmlPolicies(Disclosure):
    seller_kyc: bool
    sanctions_screening: bool
    high_value_monitoring: bool


class NftMarketplaceDisclosure(Disclosure):
    marketplace_name: Optional[str] = None
    business_entity: Optional[str] = None
    jurisdiction: Optional[str] = None
    supported_standards: List[str] = Field(default_factory=list)
    blockchain_networks: List[str] = Field(default_factory=list)

    smart_contracts: Optional[NftSmartContracts] = None
    listing_policies: Optional[ListingPolicies] = None
    moderation_procedures: Optional[ModerationProcedures] = None
    copyright_policies: Optional[CopyrightPolicies] = None
    aml_policies: Optional[NftAmlPolicies] = None
