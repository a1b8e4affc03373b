import uvicorn

from ekatalog import config


def main():
    uvicorn.run(
        "ekatalog.main:app",
        host=config.HOST,
        port=config.PORT,
        reload=False,
    )


if __name__ == "__main__":
    main()
