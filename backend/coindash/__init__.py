"""CoinDash live market-data synchronization core."""
