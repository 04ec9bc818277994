"""
Billing module configuration
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class SupplierConfig(BaseModel):
    """The registered business issuing GST invoices"""

    model_config = ConfigDict()

    name: str = Field("Pulss Technologies Pvt Ltd", description="Supplier legal name")
    gstin: str | None = Field(None, description="Supplier GSTIN")
    state: str = Field("Karnataka", description="Supplier state (GST jurisdiction)")
    address: str = Field("", description="Registered address")
    email: str | None = Field(None, description="Billing contact email")


class GSTConfig(BaseModel):
    """GST configuration"""

    model_config = ConfigDict()

    default_rate: Decimal = Field(Decimal("18"), description="GST rate percentage")
    default_hsn_sac: str = Field("998314", description="SAC for SaaS/subscription services")
    currency: str = Field("INR", description="Billing currency")
    locale: str = Field("en_IN", description="Locale for amount formatting")


class InvoiceConfig(BaseModel):
    """Invoice configuration"""

    model_config = ConfigDict()

    number_prefix: str = Field("INV", description="Invoice number prefix")
    receipt_prefix: str = Field("RCP", description="GST receipt number prefix")
    due_days_default: int = Field(7, description="Payment terms in days")
    renewal_includes_usage: bool = Field(True, description="Bill usage on renewal invoices")
    renewal_reminder_days: int = Field(3, description="Days before renewal to remind")
    trial_reminder_days: int = Field(3, description="Days before trial end to remind")


class CommissionConfig(BaseModel):
    """Partner commission configuration"""

    model_config = ConfigDict()

    lookback_days: int = Field(7, description="Days of successful payments scanned")


class BillingConfig(BaseModel):
    """Main billing configuration"""

    model_config = ConfigDict()

    supplier: SupplierConfig = Field(default_factory=SupplierConfig)
    gst: GSTConfig = Field(default_factory=GSTConfig)
    invoice: InvoiceConfig = Field(default_factory=InvoiceConfig)
    commission: CommissionConfig = Field(default_factory=CommissionConfig)

    @classmethod
    def from_settings(cls) -> "BillingConfig":
        """Create configuration from platform settings"""
        from pulss.platform.settings import settings

        billing = settings.billing
        return cls(
            supplier=SupplierConfig(
                name=billing.supplier_name,
                gstin=billing.supplier_gstin,
                state=billing.supplier_state,
                address=billing.supplier_address,
                email=billing.supplier_email,
            ),
            gst=GSTConfig(
                default_rate=billing.gst_rate,
                default_hsn_sac=billing.default_hsn_sac,
                currency=billing.currency,
                locale=billing.locale,
            ),
            invoice=InvoiceConfig(
                number_prefix=billing.invoice_prefix,
                receipt_prefix=billing.receipt_prefix,
                due_days_default=billing.invoice_due_days,
                renewal_includes_usage=billing.renewal_includes_usage,
                renewal_reminder_days=billing.renewal_reminder_days,
                trial_reminder_days=billing.trial_reminder_days,
            ),
            commission=CommissionConfig(lookback_days=billing.commission_lookback_days),
        )


# Global configuration instance
_billing_config: BillingConfig | None = None


def get_billing_config() -> BillingConfig:
    """Get the global billing configuration instance"""
    global _billing_config
    if _billing_config is None:
        _billing_config = BillingConfig.from_settings()
    return _billing_config


def set_billing_config(config: BillingConfig | None) -> None:
    """Set the global billing configuration instance"""
    global _billing_config
    _billing_config = config
