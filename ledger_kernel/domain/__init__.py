"""Pure domain core: value types, balance and period checks, line arithmetic."""
