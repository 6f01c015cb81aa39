from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Protocol, Type, TypeVar

from pydantic import BaseModel, ValidationError

from compliance_risk.core.assessment_types import FactValue
from compliance_risk.core.errors import InvalidInputError
from compliance_risk.domain.disclosures import (
    DefiDisclosure,
    ExchangeDisclosure,
    FundDisclosure,
    NftMarketplaceDisclosure,
    StablecoinDisclosure,
    TokenDisclosure,
)
from compliance_risk.domain.entity_types import EntityType
from compliance_risk.domain.jurisdictions import jurisdiction_risk_tier, worst_jurisdiction_tier

M = TypeVar("M", bound=BaseModel)


class FactNormalizer(Protocol):
    entity_type: str

    def normalize(self, disclosure: Mapping[str, Any]) -> Dict[str, FactValue]:
        raise NotImplementedError


def _parse(model: Type[M], disclosure: Mapping[str, Any]) -> M:
    if not isinstance(disclosure, Mapping):
        raise InvalidInputError(f"{model.__name__} payload must be an object")
    try:
        return model.model_validate(dict(disclosure))
    except ValidationError as exc:
        raise InvalidInputError(f"Invalid {model.__name__}: {exc}") from exc


def _has_text(value: Optional[str]) -> bool:
    return bool((value or "").strip())


class ExchangeNormalizer:
    entity_type = EntityType.EXCHANGE.value

    def normalize(self, disclosure: Mapping[str, Any]) -> Dict[str, FactValue]:
        d = _parse(ExchangeDisclosure, disclosure)
        facts: Dict[str, FactValue] = {}

        kyc = d.kyc_verification_metrics
        if kyc is not None:
            total = kyc.verified_users + kyc.non_verified_users
            facts["kyc_verification_rate"] = kyc.verified_users / total * 100.0 if total else 0.0
            facts["high_risk_jurisdiction_pct"] = kyc.high_risk_jurisdiction_percentage

        sanctions = d.sanctions_compliance
        if sanctions is not None:
            facts["sanctions_ofac_compliant"] = sanctions.ofac_compliant
            facts["sanctions_fatf_compliant"] = sanctions.fatf_compliant
            facts["sanctions_eu_compliant"] = sanctions.eu_compliant

        wash = d.wash_trading_detection
        if wash is not None:
            facts["automated_bot_detection"] = wash.automated_bot_detection
            facts["spoofing_detection"] = wash.spoofing_detection
            facts["millisecond_timestamps"] = wash.time_stamp_granularity == "milliseconds"

        if d.security_measures is not None:
            facts["two_factor_auth"] = d.security_measures.two_factor_auth
            facts["multi_sig_required"] = d.security_measures.multi_sig_required

        custody = d.custody_arrangements
        if custody is not None:
            facts["cold_storage_pct"] = custody.cold_storage_percentage
            facts["user_fund_segregation"] = custody.user_fund_segregation

        if d.blockchain_analytics is not None:
            facts["monitoring_tool_count"] = len(d.blockchain_analytics.monitoring_tools)

        if d.risk_management is not None:
            facts["market_surveillance"] = d.risk_management.market_surveillance
            facts["automated_controls"] = d.risk_management.automated_controls

        facts["holds_regulatory_license"] = _has_text(d.regulatory_licenses)
        facts["jurisdiction_risk_tier"] = jurisdiction_risk_tier(d.headquarters_location)
        return facts


class StablecoinNormalizer:
    entity_type = EntityType.STABLECOIN.value

    def normalize(self, disclosure: Mapping[str, Any]) -> Dict[str, FactValue]:
        d = _parse(StablecoinDisclosure, disclosure)
        facts: Dict[str, FactValue] = {}

        if d.reserves is not None:
            facts["reserve_coverage_pct"] = d.reserves.coverage_percentage
            facts["attestation_frequency"] = d.reserves.attestation_frequency
            facts["reserves_segregated"] = d.reserves.segregated

        facts["redemption_rights"] = d.redemption_rights

        if d.issuance_controls is not None:
            facts["kyc_on_mint_redeem"] = d.issuance_controls.kyc_on_mint_redeem
            facts["freeze_capability"] = d.issuance_controls.freeze_capability
            facts["mint_multisig"] = d.issuance_controls.mint_multisig

        facts["holds_regulatory_license"] = bool(d.regulatory_licenses)
        facts["jurisdiction_risk_tier"] = jurisdiction_risk_tier(d.jurisdiction)
        return facts


class FundNormalizer:
    entity_type = EntityType.FUND.value

    def normalize(self, disclosure: Mapping[str, Any]) -> Dict[str, FactValue]:
        d = _parse(FundDisclosure, disclosure)
        facts: Dict[str, FactValue] = {}

        custody = d.custody_arrangements
        if custody is not None:
            facts["cold_storage_pct"] = custody.cold_storage
            facts["uses_qualified_custodian"] = _has_text(custody.custodian_name)
            facts["custody_insured"] = _has_text(custody.insurance_details)

        aml = d.aml_procedures
        if aml is not None:
            facts["kyc_provider_engaged"] = _has_text(aml.kyc_provider)
            facts["ongoing_monitoring"] = aml.ongoing_monitoring
            facts["travel_rule_compliant"] = aml.travel_rule

        providers = d.servicing_providers
        if providers is not None:
            facts["has_administrator"] = _has_text(providers.administrator)
            facts["has_auditor"] = _has_text(providers.auditor)
            facts["has_legal_counsel"] = _has_text(providers.legal_counsel)

        if d.valuation_methods is not None:
            facts["third_party_valuation"] = d.valuation_methods.third_party_valuation

        licenses = d.regulatory_licenses.licenses if d.regulatory_licenses is not None else []
        facts["holds_regulatory_license"] = bool(licenses)
        facts["jurisdiction_risk_tier"] = jurisdiction_risk_tier(d.jurisdiction)
        return facts


class DefiNormalizer:
    entity_type = EntityType.DEFI.value

    def normalize(self, disclosure: Mapping[str, Any]) -> Dict[str, FactValue]:
        d = _parse(DefiDisclosure, disclosure)
        facts: Dict[str, FactValue] = {}

        if d.security is not None:
            facts["audit_count"] = len(d.security.audit_firms)
            facts["bug_bounty"] = d.security.bug_bounty
            facts["upgrade_timelock"] = d.security.upgrade_timelock

        if d.admin_controls is not None:
            facts["admin_multisig"] = d.admin_controls.multisig
            facts["emergency_pause"] = d.admin_controls.emergency_pause

        if d.governance is not None:
            facts["top_holder_governance_pct"] = d.governance.top_holder_voting_percentage

        if d.oracles is not None:
            facts["oracle_redundancy"] = d.oracles.redundant_oracles
            facts["twap_pricing"] = d.oracles.twap_pricing

        facts["frontend_sanctions_screening"] = d.frontend_sanctions_screening
        return facts


class TokenNormalizer:
    entity_type = EntityType.TOKEN.value

    def normalize(self, disclosure: Mapping[str, Any]) -> Dict[str, FactValue]:
        d = _parse(TokenDisclosure, disclosure)
        facts: Dict[str, FactValue] = {}

        facts["issuer_identified"] = _has_text(d.issuer_legal_entity)
        facts["whitepaper_published"] = _has_text(d.whitepaper_url)
        facts["compliance_contact_named"] = bool(d.compliance_contacts)

        if d.security_audit_details or d.last_audit_date is not None:
            facts["token_security_audited"] = True

        facts["kyc_policy_disclosed"] = _has_text(d.kyc_requirements)
        facts["aml_policy_published"] = _has_text(d.aml_policy_url)
        facts["transfer_restrictions_disclosed"] = _has_text(d.transfer_restrictions)
        facts["whitelist_enforced"] = d.whitelist_status

        status = (d.regulatory_status or "").strip().lower()
        facts["regulatory_status"] = status or None
        facts["jurisdiction_risk_tier"] = worst_jurisdiction_tier(j.name for j in d.jurisdictions)
        return facts


class NftMarketplaceNormalizer:
    entity_type = EntityType.NFT.value

    def normalize(self, disclosure: Mapping[str, Any]) -> Dict[str, FactValue]:
        d = _parse(NftMarketplaceDisclosure, disclosure)
        facts: Dict[str, FactValue] = {}

        contracts = d.smart_contracts
        if contracts is not None and (contracts.audited is not None or contracts.audit_firms):
            facts["nft_contracts_audited"] = bool(contracts.audited or contracts.audit_firms)

        if d.listing_policies is not None:
            facts["creator_verification"] = d.listing_policies.creator_verification
            facts["prohibited_content_policy"] = d.listing_policies.prohibited_content_policy

        if d.moderation_procedures is not None:
            facts["takedown_process"] = d.moderation_procedures.takedown_process
            facts["nft_wash_trading_monitoring"] = d.moderation_procedures.wash_trading_monitoring

        if d.copyright_policies is not None:
            facts["copyright_claims_process"] = d.copyright_policies.claims_process

        if d.aml_policies is not None:
            facts["seller_kyc"] = d.aml_policies.seller_kyc
            facts["sanctions_screening"] = d.aml_policies.sanctions_screening
            facts["high_value_monitoring"] = d.aml_policies.high_value_monitoring

        facts["jurisdiction_risk_tier"] = jurisdiction_risk_tier(d.jurisdiction)
        return facts


DEFAULT_NORMALIZERS: Dict[str, FactNormalizer] = {
    n.entity_type: n
    for n in (
        ExchangeNormalizer(),
        StablecoinNormalizer(),
        FundNormalizer(),
        DefiNormalizer(),
        TokenNormalizer(),
        NftMarketplaceNormalizer(),
    )
}


def get_normalizer(
    entity_type: str,
    normalizers: Optional[Mapping[str, FactNormalizer]] = None,
) -> FactNormalizer:
    registry = DEFAULT_NORMALIZERS if normalizers is None else normalizers
    try:
        return registry[entity_type]
    except KeyError:
        raise InvalidInputError(f"No disclosure normalizer for entity type '{entity_type}'") from None
