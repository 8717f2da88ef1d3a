"""
ROLES - canonical column vocabulary for claims tables

Every column the claims aggregation depends on is a canonical role.
Each role lists the raw column names seen in the wild, in priority order:

    1. legacy schema names (Policy_Year, APPROVEDAMOUNT, Illness_Group ...)
    2. newer schema names (Year, Paid.Claim, Grouped.Diagnosis ...)
    3. generic synonyms (Company, Organization, Account ...)

Dot-notation columns from the newer schema come back from DESCRIBE TABLE
with underscores instead of dots; both spellings fold to the same key in
resolver.normalize_key, so only one spelling is listed here.
"""

from enum import Enum
from types import MappingProxyType
from typing import Mapping, Tuple


class CanonicalRole(str, Enum):
    # Time / policy
    POLICY_YEAR = "policy_year"
    MONTH = "month"
    MONTH_NAME = "month_name"
    MONTH_YEAR = "month_year"
    QUARTER = "quarter"
    ADMISSION_DATE = "admission_date"

    # Fund / claim type
    FUND = "fund"
    CLAIM_TYPE = "claim_type"

    # Member / relationship
    MEMBER_TYPE = "member_type"
    RELATIONSHIP = "relationship"

    # Diagnosis
    ICD_CODE = "icd_code"
    ILLNESS = "illness"
    ILLNESS_GROUP = "illness_group"

    # Facility / provider
    FACILITY = "facility"
    FACILITY_TYPE = "facility_type"

    # Case
    CASE_COUNT = "case_count"
    CLAIM_NO = "claim_no"

    # Plan
    PLAN_LEVEL = "plan_level"
    PLAN_DESCRIPTION = "plan_description"

    # Demographics
    AGE = "age"
    AGE_GROUP = "age_group"
    YEAR_OF_BIRTH = "year_of_birth"
    GENDER = "gender"
    CIVIL_STATUS = "civil_status"

    # Amounts
    BILLED_AMOUNT = "billed_amount"
    COVERED_AMOUNT = "covered_amount"
    APPROVED_AMOUNT = "approved_amount"

    # Identity
    MEMBER_ID = "member_id"
    ENTITY = "entity"

    # Location / org
    BRANCH = "branch"
    CATEGORY = "category"

    # Other
    STATUS = "status"
    MBL = "mbl"


_VARIANTS = {
    CanonicalRole.POLICY_YEAR: ("Policy_Year", "Year", "Policy_Number"),
    CanonicalRole.MONTH: ("Month",),
    CanonicalRole.MONTH_NAME: ("Month_Name",),
    CanonicalRole.MONTH_YEAR: ("Month_Year",),
    CanonicalRole.QUARTER: ("New_Quarter", "Quarter"),
    CanonicalRole.ADMISSION_DATE: ("Admission_Date", "Admission.Date"),
    # fund = how the claim is financed (HMO type / carrier)
    CanonicalRole.FUND: ("Fund", "Insurer"),
    CanonicalRole.CLAIM_TYPE: (
        "Final_Claim_Type",
        "Claim_Type",
        "Claim.Type (group)",
        "Claim.Type-1",
        "Claim.Type.level.2",
        "Claim.Definition",
    ),
    CanonicalRole.MEMBER_TYPE: ("Member_Type", "Provider.Category"),
    CanonicalRole.RELATIONSHIP: ("Relationship", "Relationship (group)"),
    CanonicalRole.ICD_CODE: ("ICD_Code2", "ICD_Code", "Icd.9"),
    CanonicalRole.ILLNESS: ("Illness", "Diagnosis.Major"),
    CanonicalRole.ILLNESS_GROUP: (
        "Illness_Group",
        "Grouped.Diagnosis(Updated)",
        "Grouped.Diagnosis",
    ),
    CanonicalRole.FACILITY: ("Facility", "Provider.Name", "Providers (Hospitals)"),
    CanonicalRole.FACILITY_TYPE: ("Type_of_Facility", "Facility_Type", "Provider.Type"),
    CanonicalRole.CASE_COUNT: ("Case_Count",),
    CanonicalRole.CLAIM_NO: ("Claim_No", "Claim_ID"),
    CanonicalRole.PLAN_LEVEL: ("Plan_Level",),
    CanonicalRole.PLAN_DESCRIPTION: (
        "Plan_Description",
        "Plan.End.Date",
        "Plan.Start.Date",
    ),
    CanonicalRole.AGE: ("Age",),
    CanonicalRole.AGE_GROUP: ("Age_Group", "Age.Band", "Age.Band (group)"),
    CanonicalRole.YEAR_OF_BIRTH: ("Year_of_Birth",),
    CanonicalRole.GENDER: ("Gender", "Gender (group)"),
    CanonicalRole.CIVIL_STATUS: ("Civil_Status", "Fili.Status"),
    CanonicalRole.BILLED_AMOUNT: ("Billed_Amount", "Submitted.Claim.Amount"),
    CanonicalRole.COVERED_AMOUNT: ("Covered_Amount",),
    CanonicalRole.APPROVED_AMOUNT: ("APPROVEDAMOUNT", "Paid.Claim"),
    CanonicalRole.MEMBER_ID: (
        "Masked_Member_ID",
        "Masked_Employee_ID",
        "Member.ID",
        "Employee.ID",
        "Masked Memner ID",  # typo in source data
    ),
    CanonicalRole.ENTITY: (
        "Entity",
        "Company",
        "Organization",
        "Account",
        "Client.Name(Updated)",
        "Client.Name",
        "Client.ID",
    ),
    CanonicalRole.BRANCH: ("Branch", "Provider.Location"),
    # employer sector
    CanonicalRole.CATEGORY: ("Category", "Industry1", "Industry (group)", "Industry"),
    CanonicalRole.STATUS: ("Status", "Claim.status"),
    CanonicalRole.MBL: ("MBL", "Max_Benefit_Limit"),
}


def _build_dictionary(
    variants: Mapping[CanonicalRole, Tuple[str, ...]],
) -> Mapping[CanonicalRole, Tuple[str, ...]]:
    """Validate the variant table and freeze it."""
    missing = [role.value for role in CanonicalRole if role not in variants]
    if missing:
        raise ValueError(f"Roles without column variants: {missing}")

    empty = [role.value for role, names in variants.items() if not names]
    if empty:
        raise ValueError(f"Roles with an empty variant list: {empty}")

    # Keep declaration order of CanonicalRole so resolution order is stable
    return MappingProxyType({role: tuple(variants[role]) for role in CanonicalRole})


ROLE_DICTIONARY: Mapping[CanonicalRole, Tuple[str, ...]] = _build_dictionary(_VARIANTS)

# The only role allowed to drive a WHERE clause
YEAR_FILTER_ROLE = CanonicalRole.POLICY_YEAR
