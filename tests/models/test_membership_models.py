import pytest
from pydantic import ValidationError

from ekatalog.models import Branch, CompanyMembership, MemberRecord, MemberStatus, MemberTier, User


def test_company_membership_defaults():
    membership = CompanyMembership()

    assert membership.member_status is MemberStatus.PENDING
    assert membership.member_tier == "N/A"
    assert membership.member_since is None
    assert membership.key == (None, None)


def test_company_membership_rejects_negative_points():
    with pytest.raises(ValidationError):
        CompanyMembership(loyalty_points=-1)


def test_company_membership_keeps_unknown_fields():
    membership = CompanyMembership.model_validate({"branch_id": 1, "npwp": "01.234"})

    assert membership.model_dump()["npwp"] == "01.234"


def test_member_record_parses_nested_companies():
    record = MemberRecord.model_validate({
        "user_id": 3,
        "user_name": "Siti",
        "companies": [{"branch_id": 3, "member_status": "rejected", "reject_reason": "x"}],
    })

    assert record.is_phone_verified_otp is False
    assert record.companies[0].member_status is MemberStatus.REJECTED


def test_user_accepts_camel_case_profile_pic():
    user = User.model_validate({"id": 1, "name": "Budi", "profilePic": "a.png"})

    assert user.profile_pic == "a.png"
    assert user.is_customer is True


def test_user_placeholder():
    user = User.placeholder(9)

    assert user.name == "User 9"
    assert user.is_customer is True


def test_user_role_check_is_case_insensitive():
    assert User(id=1, name="A", role="CUSTOMER").is_customer is True
    assert User(id=1, name="A", role="Admin").is_customer is False


def test_branch_and_tier_validation():
    assert Branch(id=1, name="Bandung", lat=-6.9).lat == -6.9
    with pytest.raises(ValidationError):
        MemberTier(name="Gold", discount_rate=2)
