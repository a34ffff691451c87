"""Entry point: python -m family_vault"""

import uvicorn
from .config import settings


def main():
    uvicorn.run(
        "family_vault.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
