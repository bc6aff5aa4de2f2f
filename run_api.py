#!/usr/bin/env python3
"""
Script to run the Book Review API server.
"""

import uvicorn
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from utilities.config import config


def main():
    """Run the API server."""
    page_cap = config.max_page_limit or "none"
    print(f"📚 {config.api_title} v{config.api_version}")
    print(f"📡 Listening on http://{config.host}:{config.port} (docs at /docs)")
    print(f"🌐 Environment: {config.environment}")
    print(f"🗄️  MongoDB: {config.mongodb_url} / {config.mongodb_database}")
    print(f"📄 Page size: {config.default_page_limit} (cap: {page_cap}), featured: {config.featured_limit}")
    print("=" * 50)

    uvicorn.run(
        "api.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower(),
        access_log=True
    )


if __name__ == "__main__":
    main()
