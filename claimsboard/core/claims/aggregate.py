import math
import re
from collections import Counter, defaultdict
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from claimsboard.core.claims.normalize import normalize_row


# -----------------------------------------------------------------------------
# AGGREGATE MODULE
# Purpose: turn claim-level rows into one analytics record per client entity.
# Why: the dashboard shows per-company KPIs and charts, not individual claims.
# -----------------------------------------------------------------------------

CLAIM_SIGNALS = (
    "illness",
    "facility_type",
    "claim_no",
    "approved_amount",
    "icd_code",
    "member_id",
    "claim_type",
    "plan_level",
    "illness_group",
)

CHRONIC_GROUPS = (
    "cardiovascular",
    "endocrine",
    "metabolic",
    "neoplasm",
    "nervous",
    "musculoskeletal",
    "respiratory",
    "digestive",
    "oncology",
)

AGE_BANDS = ("0-20", "21-30", "31-35", "36-40", "41-50", "51-60", "61+")

MONTH_NUM = {
    "jan": "01",
    "feb": "02",
    "mar": "03",
    "apr": "04",
    "may": "05",
    "jun": "06",
    "jul": "07",
    "aug": "08",
    "sep": "09",
    "oct": "10",
    "nov": "11",
    "dec": "12",
}

DATE_FORMATS = (
    "%m/%d/%Y %H:%M",  # 5/31/2022 0:00 (spreadsheet export)
    "%m/%d/%Y",
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
)

DEFAULT_MBL = 400_000
UNKNOWN_ENTITIES = {"", "null", "none", "unknown"}


# ============================================================================
# STEP 1: SMALL HELPERS
# ============================================================================


def num(value: Any) -> float:
    """
    Parse an amount that may carry currency symbols or thousands separators.

    Example:
        "₱1,250.50" -> 1250.5
        None -> 0.0
    """
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return 0.0 if math.isnan(value) else float(value)

    cleaned = re.sub(r"[₱$,%\s]", "", str(value))
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    value = str(value).strip()
    return value or default


def pct(part: float, whole: float) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


def _parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    raw = text(value)
    if not raw or raw.lower() == "null":
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


def month_sort_key(row: Dict[str, Any]) -> str:
    """
    Sortable "YYYY-MM" key for a normalized row, or "-" when unknown.

    Tries month name, then numeric month, then admission date, then the
    policy year alone (January of that year).
    """
    year = text(row.get("month_year") or row.get("policy_year") or "2022")[:4]

    name = text(row.get("month_name")).lower()[:3]
    if name in MONTH_NUM:
        return f"{year}-{MONTH_NUM[name]}"

    month = text(row.get("month"))
    if month.isdigit() and 1 <= int(month) <= 12:
        return f"{year}-{int(month):02d}"

    admitted = _parse_date(row.get("admission_date") or row.get("member_reference_date"))
    if admitted:
        return f"{admitted.year}-{admitted.month:02d}"

    policy_year = text(row.get("policy_year"))[:4]
    if policy_year.isdigit():
        return f"{policy_year}-01"

    return "-"


def build_age_groups(rows: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """Count rows per age band, using age_group when it is already a band."""
    bands = {band: 0 for band in AGE_BANDS}
    for row in rows:
        group = text(row.get("age_group"))
        if group in bands:
            bands[group] += 1
            continue

        age = num(row.get("age"))
        if age <= 0:
            continue
        if age <= 20:
            bands["0-20"] += 1
        elif age <= 30:
            bands["21-30"] += 1
        elif age <= 35:
            bands["31-35"] += 1
        elif age <= 40:
            bands["36-40"] += 1
        elif age <= 50:
            bands["41-50"] += 1
        elif age <= 60:
            bands["51-60"] += 1
        else:
            bands["61+"] += 1
    return bands


def client_id(entity: str) -> str:
    """
    URL-safe id for an entity name.

    Example:
        "Acme Corp., Inc." -> "acme_corp_inc"
    """
    return re.sub(r"[^a-z0-9]+", "_", entity.lower()).strip("_")[:40]


# ============================================================================
# STEP 2: DETECT CLAIM-LEVEL DATA
# ============================================================================


def is_claims_level_data(rows: List[Dict[str, Any]]) -> bool:
    """
    Best-guess check that rows are individual claims, not summaries.

    Looks at the first row only: at least 3 claim signals must be present.
    """
    if not rows or len(rows) < 2:
        return False
    keys = " ".join(normalize_row(rows[0]).keys())
    return sum(1 for signal in CLAIM_SIGNALS if signal in keys) >= 3


# ============================================================================
# STEP 3: PER-ENTITY ANALYTICS
# ============================================================================


def _sum_by(rows: List[Dict[str, Any]], key, default: str) -> Dict[str, float]:
    totals: Dict[str, float] = defaultdict(float)
    for row in rows:
        totals[text(key(row), default)] += num(row.get("approved_amount"))
    return dict(totals)


def _count_by(rows: List[Dict[str, Any]], key, default: str) -> Dict[str, int]:
    return dict(Counter(text(key(row), default) for row in rows))


def _policy_year_costs(rows: List[Dict[str, Any]]) -> Dict[str, float]:
    costs: Dict[str, float] = defaultdict(float)
    for row in rows:
        year = text(row.get("policy_year") or row.get("month_year"))[:7]
        if year:
            costs[year] += num(row.get("approved_amount"))
    return dict(sorted(costs.items()))


def _trend_pct(costs_by_year: Dict[str, float]) -> float:
    years = list(costs_by_year)
    if len(years) < 2:
        return 0.0
    previous = costs_by_year[years[-2]] or 1
    current = costs_by_year[years[-1]]
    return round((current - previous) / previous * 100, 1)


def _monthly_chart(rows: List[Dict[str, Any]], members: int) -> Dict[str, list]:
    months: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        key = month_sort_key(row)
        if key == "-":
            continue
        bucket = months.setdefault(key, {"total": 0.0, "count": 0, "label": key})
        bucket["total"] += num(row.get("approved_amount"))
        bucket["count"] += 1
        label = f"{text(row.get('month_name'))} {text(row.get('month_year'))}".strip()
        bucket["label"] = label or key

    # Last 18 months
    keys = sorted(months)[-18:]
    return {
        "labels": [months[k]["label"] for k in keys],
        "pmpm": [round(months[k]["total"] / members) for k in keys],
        "claims": [months[k]["count"] for k in keys],
    }


def _diagnoses(rows: List[Dict[str, Any]], total_claims: int):
    groups: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        name = text(
            row.get("illness_group") or row.get("illness") or row.get("icd_code"),
            "Other",
        )
        group = groups.setdefault(name, {"cost": 0.0, "count": 0, "illnesses": []})
        group["cost"] += num(row.get("approved_amount"))
        group["count"] += 1
        illness = text(row.get("illness"))
        if illness and illness not in group["illnesses"]:
            group["illnesses"].append(illness)

    ranked = sorted(groups.items(), key=lambda item: item[1]["cost"], reverse=True)
    top5 = [
        {
            "name": name,
            "cost": round(group["cost"]),
            "count": group["count"],
            "pct": pct(group["count"], total_claims),
            "topIllness": group["illnesses"][0] if group["illnesses"] else name,
        }
        for name, group in ranked[:5]
    ]
    top10 = [
        {"name": name, "cost": round(group["cost"]), "count": group["count"]}
        for name, group in ranked[:10]
    ]
    return top5, top10


def _member_costs(rows: List[Dict[str, Any]]) -> List[float]:
    costs: Dict[str, float] = defaultdict(float)
    for row in rows:
        member = text(row.get("member_id"))
        if member:
            costs[member] += num(row.get("approved_amount"))
    return sorted(costs.values(), reverse=True)


def _member_cost_bands(costs: List[float]) -> Dict[str, int]:
    return {
        "Below ₱50k": sum(1 for c in costs if c < 50_000),
        "₱50k–100k": sum(1 for c in costs if 50_000 <= c < 100_000),
        "₱100k–200k": sum(1 for c in costs if 100_000 <= c < 200_000),
        "₱200k–400k": sum(1 for c in costs if 200_000 <= c < 400_000),
        "₱400k+ (MBL)": sum(1 for c in costs if c >= 400_000),
    }


def summarize_entity(name: str, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Compute every KPI and chart block for one entity.

    Args:
        name: Entity (company) name
        rows: Normalized claim rows of that entity

    Returns:
        Client record with display fields and an "analytics" block
    """
    # Totals
    total_claims = len(rows)
    total_approved = sum(
        num(r.get("approved_amount") or r.get("covered_amount")) for r in rows
    )
    total_billed = sum(num(r.get("billed_amount")) for r in rows)

    # Unique members (estimate 3 claims per member when ids are missing)
    member_ids = {text(r.get("member_id")) for r in rows} - {""}
    members = len(member_ids) or math.ceil(total_claims / 3) or 1

    # PMPM / PMPY
    month_keys = {month_sort_key(r) for r in rows} - {"-"}
    num_months = max(len(month_keys), 1)
    pmpm = round(total_approved / members / num_months)
    pmpy = pmpm * 12

    # YoY cost trend
    cost_by_year = _policy_year_costs(rows)
    trend = _trend_pct(cost_by_year)

    monthly_chart = _monthly_chart(rows, members)

    # Claim types
    claim_type_costs = _sum_by(rows, lambda r: r.get("claim_type"), "Other")
    claim_type_counts = _count_by(rows, lambda r: r.get("claim_type"), "Other")

    top5_diagnoses, top10_diagnoses = _diagnoses(rows, total_claims)

    # Facility utilisation
    facility_counts = _count_by(rows, lambda r: r.get("facility_type"), "Other")
    facility_costs = _sum_by(rows, lambda r: r.get("facility_type"), "Other")

    # High-cost claimants
    member_costs = _member_costs(rows)
    mbl = num(rows[0].get("mbl")) or DEFAULT_MBL
    high_cost_members = sum(1 for c in member_costs if c >= mbl * 0.5)
    high_cost_pct = pct(high_cost_members, members)
    cost_bands = _member_cost_bands(member_costs)

    # Demographics
    ages = [a for a in (num(r.get("age")) for r in rows) if 0 < a < 100]
    avg_age = round(sum(ages) / len(ages)) if ages else 0
    age_groups = build_age_groups(rows)

    gender_counts = _count_by(rows, lambda r: r.get("gender"), "Unknown")
    male = gender_counts.get("Male") or gender_counts.get("MALE") or 0
    female = gender_counts.get("Female") or gender_counts.get("FEMALE") or 0

    rel_counts = _count_by(rows, lambda r: r.get("relationship"), "Employee")
    employee_count = rel_counts.get("Employee") or rel_counts.get("EMPLOYEE") or 0
    dependent_count = sum(
        count
        for rel, count in rel_counts.items()
        if not rel.lower().startswith("employee")
    )
    dependent_ratio = round(dependent_count / employee_count, 2) if employee_count else 0

    civil_status_counts = _count_by(rows, lambda r: r.get("civil_status"), "Unknown")

    # Plan levels
    plan_counts = _count_by(rows, lambda r: r.get("plan_level"), "Unknown")
    plan_costs = _sum_by(rows, lambda r: r.get("plan_level"), "Unknown")
    plan_pmpm = {
        plan: round(cost / (plan_counts.get(plan) or 1) / num_months)
        for plan, cost in plan_costs.items()
    }

    # Fund type
    fund_counts = _count_by(rows, lambda r: r.get("fund"), "HMO")
    fund_costs = _sum_by(rows, lambda r: r.get("fund"), "HMO")

    # Quarters (rows without a quarter are skipped)
    quartered = [r for r in rows if text(r.get("quarter"))]
    quarter_costs = _sum_by(quartered, lambda r: r.get("quarter"), "")
    quarter_counts = _count_by(quartered, lambda r: r.get("quarter"), "")
    quarters = sorted(quarter_costs)

    # Chronic disease rate
    chronic_claims = sum(
        1
        for r in rows
        if any(
            g in text(r.get("illness_group") or r.get("illness")).lower()
            for g in CHRONIC_GROUPS
        )
    )
    chronic_pct = pct(chronic_claims, total_claims)

    risk_score = min(
        100,
        round(chronic_pct * 0.35 + min(abs(trend), 30) * 1.2 + high_cost_pct * 1.8 + 15),
    )
    billed_approved_ratio = (
        round(total_approved / total_billed * 100, 1) if total_billed else 100.0
    )

    latest_policy_year = list(cost_by_year)[-1] if cost_by_year else ""
    branches = list(dict.fromkeys(text(r.get("branch")) for r in rows if text(r.get("branch"))))
    category = next((text(r["category"]) for r in rows if text(r.get("category"))), "Staff")
    member_type = next(
        (text(r["member_type"]) for r in rows if text(r.get("member_type"))), "Employees"
    )

    return {
        "id": client_id(name),
        "name": name,
        "members": members,
        "pmpy": pmpy,
        "pmpm": pmpm,
        "trendPct": trend,
        "chronicPct": chronic_pct,
        "riskScore": risk_score,
        "totalCost": round(total_approved),
        "totalBilled": round(total_billed),
        "totalClaims": total_claims,
        "avgAge": avg_age,
        "industry": "HMO / Corporate Health",
        "country": "Philippines",
        "currency": "₱",
        "analytics": {
            # KPIs
            "totalApproved": round(total_approved),
            "totalBilled": round(total_billed),
            "billedApprovedRatio": billed_approved_ratio,
            "pmpm": pmpm,
            "pmpy": pmpy,
            "trendPct": trend,
            "numMonths": num_months,
            "members": members,
            "totalClaims": total_claims,
            "claimsPerMember": round(total_claims / members, 1),
            "latestPolicyYear": latest_policy_year,
            # Cost trend
            "costByPolicyYear": cost_by_year,
            "monthlyChart": monthly_chart,
            # Claim type
            "claimTypeCosts": claim_type_costs,
            "claimTypeCounts": claim_type_counts,
            "claimTypeChart": {
                "labels": list(claim_type_counts),
                "counts": list(claim_type_counts.values()),
                "costs": [round(claim_type_costs[k]) for k in claim_type_counts],
            },
            # Diagnoses
            "top5Diagnoses": top5_diagnoses,
            "top10DiagnosesChart": top10_diagnoses,
            "diagnosisChart": {
                "labels": [d["name"] for d in top10_diagnoses],
                "costs": [d["cost"] for d in top10_diagnoses],
                "counts": [d["count"] for d in top10_diagnoses],
            },
            # High-cost claimants
            "mbl": mbl,
            "highCostMembers": high_cost_members,
            "highCostPct": high_cost_pct,
            "topMemberCost": round(member_costs[0]) if member_costs else 0,
            "avgMemberCost": round(total_approved / members),
            "memberCostBands": cost_bands,
            "memberCostChart": {
                "labels": list(cost_bands),
                "counts": list(cost_bands.values()),
            },
            # Census
            "avgAge": avg_age,
            "ageGroups": age_groups,
            "ageGroupChart": {
                "labels": list(age_groups),
                "counts": list(age_groups.values()),
            },
            "genderCounts": gender_counts,
            "malePct": pct(male, total_claims),
            "femalePct": pct(female, total_claims),
            "genderChart": {
                "labels": list(gender_counts),
                "counts": list(gender_counts.values()),
            },
            "relCounts": rel_counts,
            "employeeCount": employee_count,
            "dependentCount": dependent_count,
            "dependentRatio": dependent_ratio,
            "civilStatusCounts": civil_status_counts,
            # Plans
            "planLevelCounts": plan_counts,
            "planLevelCosts": plan_costs,
            "planLevelPmpm": plan_pmpm,
            "planLevelChart": {
                "labels": list(plan_costs),
                "costs": [round(c) for c in plan_costs.values()],
                "counts": [plan_counts[k] for k in plan_costs],
                "pmpm": [plan_pmpm[k] for k in plan_costs],
            },
            "category": category,
            "memberType": member_type,
            "branches": branches,
            # Utilisation
            "facilityTypeCounts": facility_counts,
            "facilityCosts": facility_costs,
            "facilityChart": {
                "labels": list(facility_counts),
                "counts": list(facility_counts.values()),
                "costs": [round(facility_costs[k]) for k in facility_counts],
            },
            "fundCounts": fund_counts,
            "fundCosts": fund_costs,
            "chronicClaims": chronic_claims,
            "chronicPct": chronic_pct,
            # Quarters
            "quarterCosts": quarter_costs,
            "quarterCounts": quarter_counts,
            "quarterChart": {
                "labels": quarters,
                "costs": [round(quarter_costs[q]) for q in quarters],
                "counts": [quarter_counts[q] for q in quarters],
            },
        },
    }


# ============================================================================
# STEP 4: MAIN AGGREGATOR
# ============================================================================


def aggregate_claims_to_clients(raw_rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Group claim rows by entity and summarize each group.

    Rows without an entity are dropped. Clients come back sorted by
    total approved cost, most expensive first.

    Example:
        [
            {"id": "acme", "name": "Acme", "totalCost": 1250000, ...},
            {"id": "globex", "name": "Globex", "totalCost": 830000, ...}
        ]
    """
    by_entity: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for raw in raw_rows:
        row = normalize_row(raw)
        entity = text(row.get("entity"))
        if entity.lower() in UNKNOWN_ENTITIES:
            continue
        by_entity[entity].append(row)

    clients = [summarize_entity(name, rows) for name, rows in by_entity.items()]
    clients.sort(key=lambda client: client["totalCost"], reverse=True)
    return clients
