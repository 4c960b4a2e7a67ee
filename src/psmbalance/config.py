# File: src/psmbalance/config.py
"""Constants for the Lalonde covariate-balance analysis."""

# ── Model ──────────────────────────────────────────────────────────────────────
TREATMENT_COL = "treat"
FORMULA = "treat ~ age + educ + race + married + nodegree + re74 + re75"

REQUIRED_COLUMNS = [
    "treat", "age", "educ", "race", "married", "nodegree", "re74", "re75",
]

# ── Recoding ───────────────────────────────────────────────────────────────────
RACE_LABELS = {"black": "Black", "hispan": "Hispanic", "white": "White"}
MARRIED_LABELS = {1: "Married", 0: "Other"}

# Display names for the balance terms shown in the Love plots
VAR_NAMES = {
    "age": "Age (Years)",
    "educ": "Education (Years)",
    "race_White": "Race (White)",
    "race_Black": "Race (Black)",
    "race_Hispanic": "Race (Hispanic)",
    "married_Other": "Not Married",
    "nodegree": "No Degree",
    "re74": "Earnings (1974)",
    "re75": "Earnings (1975)",
}

# ── Styling ────────────────────────────────────────────────────────────────────
SAMPLE_NAMES = ("Unmatched", "Matched")
GROUP_LABELS = ("Control", "Treatment")

# Berkeley blue / California gold
GROUP_COLORS = ("#003262", "#FDB515")     # (control, treated)
SAMPLE_COLORS = ("#FDB515", "#003262")    # (unmatched, matched)

FONT_SIZE = 12
TITLE_SIZE = 16

MEAN_DIFF_THRESHOLD = 0.1
KS_THRESHOLD = 0.05

# (variable, panel title, x-axis label), laid out row by row in a 2 x 2 grid
DISTRIBUTION_PANELS = [
    ("age", "Age", "Age (Years)"),
    ("race", "Race/Ethnicity", "Race/Ethnicity"),
    ("educ", "Education", "Education (Years)"),
    ("married", "Marital Status", "Marital Status"),
]

DISTRIBUTION_TITLE = "Distribution Balance in Unmatched and Matched Samples"
LOVE_PLOTS_TITLE = "Covariate Balance in Matched and Unmatched Sample"
