# Puts the repository root on sys.path so tests import the nexus_ledger package.
