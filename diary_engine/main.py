"""Main entry point for the Diary Engine server."""

import logging
import sys
import io
from pathlib import Path

import uvicorn


def setup_logging(debug: bool = False):
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO
    
    # Force UTF-8 encoding for stdout/stderr on Windows
    if sys.platform == 'win32':
        sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
        sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')
    
    handlers = [logging.StreamHandler(sys.stdout)]
    
    file_handler = None
    log_file = None
    
    # Add file handler if debug mode is enabled
    if debug:
        from datetime import datetime
        log_dir = Path("data/debug_logs/server")
        log_dir.mkdir(parents=True, exist_ok=True)
        
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"server_{timestamp}.log"
        
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(file_handler)
    
    # Root stays at INFO so library debug output stays out of the logs
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )
    
    diary_logger = logging.getLogger('diary_engine')
    diary_logger.setLevel(level)
    
    # Silence noisy third-party loggers
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    
    startup_logger = logging.getLogger(__name__)
    if debug:
        startup_logger.info(f"[STARTUP] Server log file: {log_file}")
    startup_logger.info(f"[STARTUP] Logging configured: level={level}")
    
    return file_handler, log_file


def main(system_config=None):
    """Run the FastAPI server."""
    from diary_engine.config import ConfigLoader, SystemConfig
    from diary_engine.api.app import app_state
    try:
        if system_config is None:
            system_config = ConfigLoader().load_system_config()
    except Exception as e:
        # Use basic logging since logger isn't configured yet
        logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        logging.getLogger(__name__).warning(f"[STARTUP WARNING] Could not load system config: {e}, using defaults")
        system_config = SystemConfig()
    
    setup_logging(debug=system_config.debug)
    app_state["config"] = system_config
    
    logger = logging.getLogger(__name__)
    logger.info(f"Starting Diary Engine server (debug mode: {system_config.debug})...")
    logger.info(f"Server will listen on {system_config.api_host}:{system_config.api_port}")
    
    uvicorn.run(
        "diary_engine.api.app:app",
        host=system_config.api_host,
        port=system_config.api_port,
        reload=False,
        log_level="info",
        log_config=None,  # Keep our basicConfig
    )


if __name__ == "__main__":
    main()
