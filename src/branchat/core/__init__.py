"""Pure data and text-processing core. No UI, no I/O."""
