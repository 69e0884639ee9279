"""Pure domain core: fees, lifecycles, voucher codes and time."""
