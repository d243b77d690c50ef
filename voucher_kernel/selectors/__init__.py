"""Read-only query selectors for the voucher kernel."""

from voucher_kernel.selectors.voucher_selector import VoucherSelector

__all__ = ["VoucherSelector"]
