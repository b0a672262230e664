"""Run the gateway with uvicorn: ``python -m sip_gateway``."""

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "sip_gateway.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3005")),
        log_config=None,
    )


if __name__ == "__main__":
    main()
