# Default settings for the customer insights engine
# These act as defaults; runtime overrides are stored in data/insights/config.json

# Division -> storage mapping. Only 'active' divisions accept report requests.
DIVISIONS = {
    "FP": {"database": "fp_database", "table": "fp_data_excel", "status": "active"},
    "SB": {"database": "sb_database", "table": "sb_data_excel", "status": "planned"},
    "TF": {"database": "tf_database", "table": "tf_data_excel", "status": "planned"},
    "HCM": {"database": "hcm_database", "table": "hcm_data_excel", "status": "planned"},
}

# Number of customers shown individually; the rest are rolled into "Others"
TOP_N = 20

# Maximum number of period columns a report may carry
MAX_COLUMNS = 5

# Concentration risk step function (shares are fractions of the period total)
CONCENTRATION_CRITICAL_TOP1 = 0.5
CONCENTRATION_HIGH_TOP1 = 0.3
CONCENTRATION_HIGH_TOP3 = 0.7
CONCENTRATION_MEDIUM_TOP1 = 0.2
CONCENTRATION_MEDIUM_TOP3 = 0.5

# Churn risk buckets
CHURN_HIGH = 0.3
CHURN_MEDIUM = 0.15

# Run-rate: on track when current run-rate reaches this fraction of the required one
RUNRATE_WARN = 0.85

# Outlier detection on YoY growth rates
OUTLIER_Z_THRESHOLD = 2.0
OUTLIER_MAX = 5

# Materiality gates for the volume/sales advantage lists
MIN_VOLUME_SHARE = 0.02      # 2% of total volume
MIN_ABSOLUTE_VOLUME_MT = 10  # metric tons (volume is stored in kg)
MIN_PERFORMANCE_GAP = 10     # percentage points
ADVANTAGE_MAX = 3

# Kilo-rate leaderboard only considers customers above this share of volume
KILO_RATE_MIN_SHARE = 0.01

# Focus customers (materiality x variance)
CUM_SHARE_TARGET = 0.80
MAX_FOCUS = 10
MAX_LIST = 6
UNDERPERF_VOL_PCT = -15      # vs budget
UNDERPERF_YOY_VOL = -10      # vs prior year
GROWTH_VOL_PCT = 15          # vs budget
GROWTH_YOY_VOL = 20          # vs prior year

# Columns expected in an uploaded facts file (case-insensitive, aliases allowed)
REQUIRED_FACT_COLUMNS = [
    "year",
    "month",
    "type",
    "values_type",
    "customername",
    "salesrepname",
    "values",
]

# Header aliases accepted on upload -> canonical column
FACT_COLUMN_ALIASES = {
    "customer": "customername",
    "customer_name": "customername",
    "salesrep": "salesrepname",
    "sales_rep": "salesrepname",
    "productgroup": "productgroup",
    "product_group": "productgroup",
    "country": "countryname",
    "valuestype": "values_type",
    "value_type": "values_type",
    "value": "values",
    "data_type": "type",
}
