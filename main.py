from remote_fs_gateway.__main__ import main


if __name__ == "__main__":
    import sys

    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n服务器已停止", file=sys.stderr)
        sys.exit(0)
    except Exception as e:
        print(f"启动失败: {e}", file=sys.stderr)
        import traceback

        traceback.print_exc()
        sys.exit(1)
