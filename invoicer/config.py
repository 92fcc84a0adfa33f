from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./invoicer.db"
    LOG_LEVEL: str = "INFO"

    # Documents
    TAX_RATE: float = 0.0825  # Ohio sales tax
    INVOICE_DUE_DAYS: int = 30
    ESTIMATE_VALID_DAYS: int = 30

    # Foam material cost bounds ($/lb), business-configured
    PRICE_PER_POUND_LOW: float = 7.00
    PRICE_PER_POUND_HIGH: float = 10.00

    # mailto: URLs longer than this fall back to copy/paste
    MAILTO_MAX_LENGTH: int = 2000

    # Business profiles
    CONCRETE_BUSINESS_NAME: str = "Superior Concrete Leveling LLC"
    CONCRETE_BUSINESS_WEBSITE: str = "superiorconcrete.com"
    MASONRY_BUSINESS_NAME: str = "J. Stark Masonry & Construction LLC"
    MASONRY_BUSINESS_WEBSITE: str = "jstarkmasonry.com"
    BUSINESS_ADDRESS: str = "4373 N Myers Rd, Geneva, OH 44041"
    BUSINESS_PHONE: str = "(440) 415-2534"
    BUSINESS_EMAIL: str = ""

    class Config:
        env_file = ".env"

    def business_profile(self, business_type: str) -> dict:
        """Header details for a document's issuing business."""
        if business_type == "masonry":
            name, website = self.MASONRY_BUSINESS_NAME, self.MASONRY_BUSINESS_WEBSITE
        else:
            name, website = self.CONCRETE_BUSINESS_NAME, self.CONCRETE_BUSINESS_WEBSITE
        return {
            "name": name,
            "address": self.BUSINESS_ADDRESS,
            "phone": self.BUSINESS_PHONE,
            "email": self.BUSINESS_EMAIL,
            "website": website,
        }


settings = Settings()
