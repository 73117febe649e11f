LOWERCASE_PARTICLES = {"da", "de", "do", "das", "dos", "e"}


def normalize_name(full_name: str | None) -> str | None:
    """Title-case a personal name, keeping Portuguese particles lower-case."""
    if not full_name:
        return full_name
    words: list[str] = []
    for word in full_name.split():
        lower = word.lower()
        words.append(lower if lower in LOWERCASE_PARTICLES else lower[:1].upper() + lower[1:])
    return " ".join(words)


def normalize_org(text: str | None) -> str | None:
    """Keep the label before the first " - " and title-case it.

    "GERENCIA DE TI - PC (LC 741/2019)" -> "Gerencia de Ti"
    """
    if not text:
        return text
    return normalize_name(text.split(" - ")[0].strip())


# Job titles come from the same directory and follow the same shape.
normalize_job_title = normalize_org


def normalize_email(email: str | None) -> str | None:
    if not email:
        return email
    return email.strip().lower()


def email_in_domain(email: str, domain: str) -> bool:
    normalized = normalize_email(email) or ""
    return normalized.endswith("@" + domain.strip().lower())
