# Poverty and CA-MRSA in California
"""
Area-level poverty and community-acquired MRSA skin/soft-tissue infections
across California Medical Service Study Areas (MSSAs).
A Bayesian multilevel mediation study with a BYM2 spatial random effect.

Project Structure:
    camrsa/
    ├── common/        - Shared path helpers
    ├── data/          - STAGE 1: Loading and joining visit + area inputs
    ├── labels/        - Case definition (CA-MRSA SSTI flag)
    ├── features/      - STAGE 2: Recoding, covariate sets, design matrices
    ├── spatial/       - MSSA adjacency graph for the BYM2 effect
    ├── descriptive/   - Table 1 and area-level summaries
    ├── mapping/       - Choropleth and facility maps
    ├── models/        - STAGE 3: Bayesian logistic models (Stan)
    ├── evaluation/    - WAIC and fit metrics
    ├── analysis/      - STAGE 4: Mediation and sensitivity analyses
    └── visualization/ - Result plots
"""

__version__ = "0.1.0"
__author__ = "CA-MRSA Poverty Study Team"
