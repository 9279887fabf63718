DB_DIR = "auric.db"  # default path of the sqlite database used by the engine

POSITION_ACCRUAL_FREQUENCY = 3600  # time in seconds between position accrual runs
LOCK_ACCRUAL_FREQUENCY = 86400  # time in seconds between lock accrual runs
NEW_TASK_INITIAL_DELAY = 5  # time in seconds to delay the accrual loops on initial startup

# compounding
HOURS_PER_YEAR = 8760
COMPOUNDING_PERIODS_PER_YEAR = 8760  # hourly compounding
MIN_HOURS_BETWEEN_ACCRUALS = 1.0
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400
DAYS_PER_YEAR = 365

# governance token which grants the holder bonus on quotes
GOVERNANCE_ASSET = "AURU"

# base APY bands (percent) interpolated by utilization
BASE_RATE_BANDS = {
    "USDC": (2.0, 8.0),
    "USDT": (1.5, 7.5),
    "DAI": (2.5, 9.0),
    "XAUT": (3.0, 12.0),  # higher due to commodity nature
    "AURU": (5.0, 15.0),
}
DEFAULT_RATE_BAND_ASSET = "USDC"

# fallback APYs (percent) served when pool data is unavailable
FALLBACK_APYS = {
    "USDC": 3.5,
    "USDT": 3.0,
    "DAI": 4.0,
    "XAUT": 5.0,
    "AURU": 8.0,
}
DEFAULT_FALLBACK_APY = 3.5

# utilization bonus steps (utilization threshold, bonus in percent), checked in order
UTILIZATION_BONUS_STEPS = ((0.7, 1.0), (0.5, 0.5))

# demand bonus steps on trailing deposit volume (volume threshold, bonus in percent)
DEMAND_BONUS_STEPS = ((100_000, 1.5), (50_000, 1.0), (10_000, 0.5))
DEMAND_WINDOW_DAYS = 7

GOVERNANCE_BONUS = 0.2  # percent

# platform fee, as a fraction of the gross APY
PLATFORM_BASE_FEE = 0.018
MIN_PLATFORM_FEE = 0.01
MAX_PLATFORM_FEE = 0.025
HIGH_UTILIZATION_FEE_THRESHOLD = 0.8
HIGH_UTILIZATION_FEE = 0.005
HIGH_APY_FEE_THRESHOLD = 10.0  # percent
HIGH_APY_FEE = 0.002

DEFAULT_PROJECTION_DAYS = 365

# kinked interest rate models, rates are annual decimal fractions
RATE_MODELS = {
    "USDC": {
        "base_rate": 0.02,
        "rate_slope1": 0.05,
        "rate_slope2": 1.0,
        "optimal_utilization": 0.8,
        "reserve_factor": 0.1,
    },
    "USDT": {
        "base_rate": 0.015,
        "rate_slope1": 0.04,
        "rate_slope2": 0.75,
        "optimal_utilization": 0.8,
        "reserve_factor": 0.1,
    },
    "DAI": {
        "base_rate": 0.025,
        "rate_slope1": 0.06,
        "rate_slope2": 1.2,
        "optimal_utilization": 0.75,
        "reserve_factor": 0.08,
    },
    "XAUT": {
        "base_rate": 0.03,
        "rate_slope1": 0.08,
        "rate_slope2": 1.5,
        "optimal_utilization": 0.7,
        "reserve_factor": 0.15,
    },
    "AURU": {
        "base_rate": 0.05,
        "rate_slope1": 0.1,
        "rate_slope2": 2.0,
        "optimal_utilization": 0.6,
        "reserve_factor": 0.05,
    },
}
