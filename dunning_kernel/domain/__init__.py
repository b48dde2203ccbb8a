"""Pure domain helpers shared across layers: clocks and currencies."""
