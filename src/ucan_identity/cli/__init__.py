"""ucan_identity.cli — command-line host shell."""
