import sys

from .strand import run

USAGE = 'Usage: strand <script>'

def main(argv=None):
  argv = sys.argv[1:] if argv is None else argv

  if len(argv) != 1:
    print(USAGE)
    return 1

  path = argv[0]
  try:
    with open(path, encoding='utf-8') as f:
      text = f.read()
  except OSError:
    print(f"ERROR: Unable to read file '{path}'", file=sys.stderr)
    return 1

  _, error = run(path, text)
  if error:
    sys.stdout.flush()
    print(error.as_diagnostic(), file=sys.stderr)
    return 1

  return 0

if __name__ == '__main__':
  sys.exit(main())
