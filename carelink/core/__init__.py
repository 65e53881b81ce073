"""Access rules, record linkage and the appointment lifecycle."""
