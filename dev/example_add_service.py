from pollster.utils.service_config import add_service

if __name__ == "__main__":
    add_service("bing", "https://www.bing.com")
    add_service("httpbin-ok", "https://httpbin.org/status/200")

    # Always DOWN: non-2xx response
    add_service("httpbin-teapot", "https://httpbin.org/status/418")
