"""Unit tests for business rule functions and the BusinessRuleValidator"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from repositories.ports import StoredRecord
from staging.draft import Draft, DraftKind, LineSnapshot, SectionSnapshot
from staging.errors import TransientBackendError
from staging.status import DraftState
from validation.engine import BusinessRuleValidator
from validation.models import Err, Ok, ValidationContext
from validation.rules import (
    validate_account_affiliate_exclusivity,
    validate_cart_lines,
    validate_category_requirements,
    validate_category_uniqueness,
    validate_conditional_other_fields,
    validate_required_fields,
)


NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def membership(**sections) -> Draft:
    return Draft(
        id="s-1",
        owner_id="member-1",
        kind=DraftKind.MEMBERSHIP,
        state=DraftState.STAGING,
        created_at=NOW,
        expires_at=NOW + timedelta(hours=1),
        sections={
            name: SectionSnapshot(name=name, fields=fields, position=i)
            for i, (name, fields) in enumerate(sections.items(), start=1)
        },
    )


def cart(*lines) -> Draft:
    return Draft(
        id="s-1",
        owner_id="member-1",
        kind=DraftKind.CART,
        state=DraftState.STAGING,
        created_at=NOW,
        expires_at=NOW + timedelta(hours=1),
        items={line.item_id: line for line in lines},
    )


def fields_of(result):
    assert isinstance(result, Err)
    return [e.field for e in result.errors]


CONTEXT = ValidationContext(session_id="s-1")
CATEGORY = {"membership_category": "STUDENT", "membership_year": "2026", "account_id": "acc-1"}


class TestCartLines:

    def test_empty_cart(self):
        assert fields_of(validate_cart_lines(cart(), CONTEXT)) == ["items"]

    def test_valid_cart(self):
        line = LineSnapshot("A", "A", 1, Decimal("10.00"), Decimal("0"))
        assert isinstance(validate_cart_lines(cart(line), CONTEXT), Ok)

    def test_bad_lines(self):
        line = LineSnapshot("A", "A", 0, Decimal("-1.00"), Decimal("-5"))
        assert fields_of(validate_cart_lines(cart(line), CONTEXT)) == [
            "items.A.quantity", "items.A.unit_price", "items.A.tax_rate",
        ]

    def test_membership_without_items_is_fine(self):
        assert isinstance(validate_cart_lines(membership(category=CATEGORY), CONTEXT), Ok)


class TestRequiredFields:

    def test_cart_is_skipped(self):
        assert isinstance(validate_required_fields(cart(), CONTEXT), Ok)

    def test_category_section_required(self):
        draft = membership(preferences={"membership_declaration": True})
        assert fields_of(validate_required_fields(draft, CONTEXT)) == ["sections.category"]

    @pytest.mark.parametrize("blank", [None, "", "   ", []])
    def test_blank_values_are_missing(self, blank):
        draft = membership(category={"membership_category": "STUDENT", "membership_year": blank})
        assert fields_of(validate_required_fields(draft, CONTEXT)) == ["sections.category.membership_year"]

    def test_declaration_must_be_true(self):
        draft = membership(category=CATEGORY, preferences={"membership_declaration": "true"})
        assert fields_of(validate_required_fields(draft, CONTEXT)) == [
            "sections.preferences.membership_declaration",
        ]

    def test_false_declaration_is_not_blank(self):
        draft = membership(category=CATEGORY, preferences={"membership_declaration": False})
        assert fields_of(validate_required_fields(draft, CONTEXT)) == [
            "sections.preferences.membership_declaration",
        ]

    def test_complete_registration(self):
        draft = membership(category=CATEGORY, preferences={"membership_declaration": True})
        assert isinstance(validate_required_fields(draft, CONTEXT), Ok)


class TestConditionalOther:

    def test_single_choice_other_requires_text(self):
        draft = membership(employment={"role_descriptor": "OTHER"})
        assert fields_of(validate_conditional_other_fields(draft, CONTEXT)) == [
            "sections.employment.role_descriptor_other",
        ]

    def test_multi_select_other_requires_text(self):
        draft = membership(practices={"practice_settings": ["HOSPITAL", "OTHER"]})
        assert fields_of(validate_conditional_other_fields(draft, CONTEXT)) == [
            "sections.practices.practice_settings_other",
        ]

    def test_other_with_text_passes(self):
        draft = membership(
            employment={"role_descriptor": "OTHER", "role_descriptor_other": "Researcher"},
            practices={"practice_services": ["OTHER"], "practice_services_other": "Home visits"},
        )
        assert isinstance(validate_conditional_other_fields(draft, CONTEXT), Ok)

    def test_no_other_selected(self):
        draft = membership(employment={"role_descriptor": "CLINICIAN"})
        assert isinstance(validate_conditional_other_fields(draft, CONTEXT), Ok)


class TestAccountAffiliateExclusivity:

    def test_both_set(self):
        draft = membership(category={**CATEGORY, "affiliate_id": "aff-1"})
        assert fields_of(validate_account_affiliate_exclusivity(draft, CONTEXT)) == [
            "sections.category.affiliate_id",
        ]

    def test_neither_set_on_category(self):
        draft = membership(category={"membership_category": "STUDENT", "membership_year": "2026"})
        assert fields_of(validate_account_affiliate_exclusivity(draft, CONTEXT)) == [
            "sections.category.account_id",
        ]

    def test_affiliate_only(self):
        draft = membership(category={"membership_category": "AFFILIATE", "affiliate_id": "aff-1"})
        assert isinstance(validate_account_affiliate_exclusivity(draft, CONTEXT), Ok)

    def test_other_sections_may_omit_both(self):
        draft = membership(category=CATEGORY, employment={"employment_status": "EMPLOYED"})
        assert isinstance(validate_account_affiliate_exclusivity(draft, CONTEXT), Ok)


class TestCategoryRequirements:

    def test_full_member_needs_practice_sections(self):
        draft = membership(category={**CATEGORY, "membership_category": "FULL"})
        assert fields_of(validate_category_requirements(draft, CONTEXT)) == [
            "sections.employment", "sections.practices",
        ]

    def test_student_does_not(self):
        assert isinstance(validate_category_requirements(membership(category=CATEGORY), CONTEXT), Ok)


class FindingRepository:
    """Returns canned records from find()."""

    def __init__(self, records=None, error=None):
        self.records = records or []
        self.error = error

    def find(self, record_type, owner_id):
        if self.error:
            raise self.error
        return [r for r in self.records if r.record_type == record_type and r.owner_id == owner_id]


def category_record(key, year):
    return StoredRecord(
        id=f"rec-{key}",
        record_type="membership_category",
        idempotency_key=key,
        session_id=key.split(":")[0],
        owner_id="member-1",
        payload={"membership_year": year},
    )


class TestCategoryUniqueness:

    def test_existing_category_for_year(self):
        repo = FindingRepository([category_record("old-session:category", 2026)])
        context = ValidationContext(session_id="s-1", repository=repo)
        draft = membership(category=CATEGORY)

        assert fields_of(validate_category_uniqueness(draft, context)) == [
            "sections.category.membership_year",
        ]

    def test_other_year_is_fine(self):
        repo = FindingRepository([category_record("old-session:category", "2025")])
        context = ValidationContext(session_id="s-1", repository=repo)
        assert isinstance(validate_category_uniqueness(membership(category=CATEGORY), context), Ok)

    def test_own_earlier_attempt_is_ignored(self):
        repo = FindingRepository([category_record("s-1:category", "2026")])
        context = ValidationContext(session_id="s-1", repository=repo)
        assert isinstance(validate_category_uniqueness(membership(category=CATEGORY), context), Ok)

    def test_without_repository_rule_is_skipped(self):
        assert isinstance(validate_category_uniqueness(membership(category=CATEGORY), CONTEXT), Ok)


class TestBusinessRuleValidator:

    def test_all_rules_run(self):
        draft = membership(
            category={"membership_category": "FULL", "membership_year": "2026"},
            employment={"role_descriptor": "OTHER"},
        )
        report = BusinessRuleValidator().validate(draft)

        assert report.ready is False
        fields = [e.field for e in report.errors]
        assert "sections.employment.employment_status" in fields
        assert "sections.employment.role_descriptor_other" in fields
        assert "sections.category.account_id" in fields
        assert "sections.practices" in fields

    def test_ready_report(self):
        draft = membership(category=CATEGORY, preferences={"membership_declaration": True})
        report = BusinessRuleValidator(repository=FindingRepository()).validate(draft)

        assert report.ready is True
        assert report.to_dict()["errors"] == []

    def test_backend_failure_propagates(self):
        repo = FindingRepository(error=TransientBackendError("store unreachable"))
        validator = BusinessRuleValidator(repository=repo)

        with pytest.raises(TransientBackendError):
            validator.validate(membership(category=CATEGORY))

    def test_custom_rule_list(self):
        validator = BusinessRuleValidator(rules=[("cart_lines", validate_cart_lines)])
        report = validator.validate(membership())
        assert report.ready is True
