# File: demo_lalonde.py
#
# Propensity score methods for causal inference:
# data visualizations to assess covariate balance on the Lalonde data.

from psmbalance import run_analysis

# 1. Load data, recode race / marital status
# 2. Fit the no-matching reference and full matching (probit propensity score)
# 3. Distribution plots and Love plots (mean differences, KS statistics)
results = run_analysis()

print("\n--- Balance table ---")
print(results["balance"])
