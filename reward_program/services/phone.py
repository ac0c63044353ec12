"""Mobile number helpers shared by the OTP flow and logging."""


def mask_mobile(mobile_number: str | None) -> str:
    """0501234567 -> 050****567. Anything shorter than 4 characters is fully masked."""
    if not mobile_number or len(mobile_number) < 4:
        return "****"
    return f"{mobile_number[:3]}****{mobile_number[-3:]}"


def to_e164(mobile_number: str) -> str:
    """Saudi local numbers (05XXXXXXXX) to +9665XXXXXXXX; other shapes pass through."""
    if mobile_number.startswith("05"):
        return f"+966{mobile_number[1:]}"
    if mobile_number.startswith("966"):
        return f"+{mobile_number}"
    return mobile_number
