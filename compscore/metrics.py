"""Prometheus metrics for the comp scoring engine."""

from prometheus_client import Counter, Histogram

# Per-comp validation
comps_validated_total = Counter(
    "comps_validated_total",
    "Total number of comps run through criterion validation",
    ["result"],  # passed / failed
)

comp_validation_score = Histogram(
    "comp_validation_score",
    "Distribution of comp validation overall scores",
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
)

# Comp-set filtering
comps_filtered_total = Counter(
    "comps_filtered_total",
    "Comps kept, discounted or dropped by the relevance filter",
    ["outcome"],  # kept / marginal / dropped
)

# Image verification
image_comparisons_total = Counter(
    "image_comparisons_total",
    "Image comparison attempts by outcome",
    ["status"],  # verified / partial / failed / error / cached
)

# Identification re-validation
identification_checks_total = Counter(
    "identification_checks_total",
    "Identification validation runs by outcome",
    ["outcome"],  # valid / warnings / reidentify
)
