"""
MesoArch — shared Python package.

Contains the core logic for the Mesolithic cave presence model:
  - mesoarch.data.sites              — radiocarbon site database cleaning
  - mesoarch.data.caves              — open-data cave location loading
  - mesoarch.spatial.polygon_filter  — region-of-interest point filter
  - mesoarch.spatial.predictors      — raster/vector predictor extraction
  - mesoarch.features.names          — canonical place-name join keys
  - mesoarch.features.presence       — site/cave presence labelling
  - mesoarch.model.training          — class balancing and Random Forest training
  - mesoarch.model.prediction        — inference and outcome categories
  - mesoarch.config                  — YAML config loading
  - mesoarch.logging_utils           — project-wide logger factory
"""
