import logging
import socket
from contextlib import contextmanager
from typing import Iterator, Optional

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.chrome.webdriver import WebDriver
from webdriver_manager.chrome import ChromeDriverManager

from app.platform.config import settings
from app.platform.exceptions import JobFailure

logger = logging.getLogger(__name__)


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class BrowserSession:
    """One headless Chrome owned by a single background job."""

    def __init__(self, driver: WebDriver, port: int):
        self.driver = driver
        self.port = port


class BrowserSessionManager:
    """
    Launches and tears down isolated Chrome instances.

    Chrome is started with a remote debugging port so Lighthouse can drive
    the same browser that Selenium uses for the accessibility pass.
    """

    def __init__(
        self,
        chromedriver_path: Optional[str] = None,
        chrome_binary_path: Optional[str] = None,
        page_load_timeout: Optional[int] = None,
    ):
        self.chromedriver_path = chromedriver_path or settings.CHROMEDRIVER_PATH
        self.chrome_binary_path = chrome_binary_path or settings.CHROME_BINARY_PATH
        self.page_load_timeout = page_load_timeout or settings.PAGE_LOAD_TIMEOUT

    def build_options(self, port: int) -> Options:
        chrome_options = Options()
        chrome_options.add_argument("--headless=new")
        chrome_options.add_argument("--no-sandbox")
        chrome_options.add_argument("--disable-setuid-sandbox")
        chrome_options.add_argument("--disable-dev-shm-usage")
        chrome_options.add_argument("--disable-gpu")
        chrome_options.add_argument(f"--remote-debugging-port={port}")
        if self.chrome_binary_path:
            chrome_options.binary_location = self.chrome_binary_path
        return chrome_options

    def _service(self) -> Service:
        if self.chromedriver_path:
            return Service(executable_path=self.chromedriver_path)
        return Service(ChromeDriverManager().install())

    def acquire(self) -> BrowserSession:
        port = _free_port()
        try:
            driver = webdriver.Chrome(service=self._service(), options=self.build_options(port))
        except Exception as e:
            logger.error(f"Browser launch failed: {str(e)}")
            raise JobFailure(f"Could not launch browser: {str(e)}") from e

        driver.set_page_load_timeout(self.page_load_timeout)
        logger.info(f"Browser session started on debugging port {port}")
        return BrowserSession(driver, port)

    def release(self, session: BrowserSession) -> None:
        try:
            session.driver.quit()
            logger.info(f"Browser session on port {session.port} closed")
        except WebDriverException as e:
            logger.warning(f"Error closing browser on port {session.port}: {str(e)}")

    @contextmanager
    def session(self) -> Iterator[BrowserSession]:
        """
        Scoped acquisition: the browser is released on every exit path.

        Example:
            with manager.session() as session:
                analyzer.run(url, session.port)
        """
        browser = self.acquire()
        try:
            yield browser
        finally:
            self.release(browser)
