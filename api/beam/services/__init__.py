"""Domain services; routes stay thin and delegate here."""
