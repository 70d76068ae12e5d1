# pipeline/: analysis scripts for the MesoArch cave model.
#
# Run scripts in order:
#   01_clean_sites          → date/country/region filtering of the site database
#   02_build_observations   → caves, presence labels and predictor extraction per region
#   03_train_random_forest  → balanced Random Forest on the Spanish table
#   04_predict_sites        → apply the model to Spain and Liguria, export outcomes
