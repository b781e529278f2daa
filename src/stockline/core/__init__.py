"""Movement and balance-reconciliation core for Stockline."""
