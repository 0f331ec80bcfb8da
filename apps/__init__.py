"""Restaurant POS services. Each service lives in ``apps/<name>/app``."""
