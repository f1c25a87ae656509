import asyncio, dotenv

dotenv.load_dotenv()

if __name__ == "__main__":
    from trawler.main import run

    asyncio.run(run())
